"""scanner/ -- Black-box verification harness for the SecureAuth gateway.

Layer rule: scanner/ imports only core/, stdlib, and third-party libraries.
It talks to the gateway over HTTP and never imports from api/ or auth/.
"""
