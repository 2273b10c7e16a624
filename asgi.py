"""
asgi.py -- ASGI entry point for the SecureAuth gateway.

Builds the app from environment-derived settings (see core/config.py).

Run with:  uvicorn asgi:app --port 3000
           VULN_MODE=true uvicorn asgi:app --port 3000   # training fault on /internal/reports

Host header allow-list:
  Requests whose Host is not in ALLOWED_HOSTS get 400 from TrustedHostMiddleware.
  The default covers localhost, 127.0.0.1, *.localhost and the test client.
  When the gateway is reached by a LAN or container hostname (including by the
  scanner), list that name, as a JSON array:

           ALLOWED_HOSTS='["gateway.lan", "localhost"]' uvicorn asgi:app --host 0.0.0.0 --port 3000
"""

from api.main import create_app

app = create_app()
