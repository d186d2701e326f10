from backend.src.main import health_check, hello
from backend.src.shared.config import Settings
from backend.src.tmppki.bundle import TemporaryPKI
from backend.src.tmppki.certificates import Certificate
from backend.src.tmppki.keys import Algorithm, Key
from backend.src.tmppki.lifecycle import PKILifecycle
from backend.src.tmppki.serving import TLSServer, UvicornTLSServer

# Pydantic Settings (read from environment / .env)
Settings.model_config
Settings.APP_ENV
Settings.TMPPKI_CA_KEY_PATH
Settings.TMPPKI_CA_CERT_PATH

# Public API used by callers, not by this package
Algorithm.must_generate_key
Key.marshal_der
Certificate.fingerprint
Certificate.public
Certificate.private
TemporaryPKI.materialized
TemporaryPKI.ca_certificate
PKILifecycle.can_transition

# Structural typing
TLSServer.serve_tls
UvicornTLSServer.wait_started
UvicornTLSServer.shutdown

# FastAPI
health_check
hello
