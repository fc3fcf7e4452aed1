import datetime
import ssl

from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.x509.oid import NameOID
import pytest

from destroyable.destroyer import (
    make_destroyable,
)
from destroyable.tools.factories import (
    MockConnectionFactory,
    TCPServerFactory,
)
from destroyable.tools.utils import (
    MockServer,
)


@pytest.fixture
def mock_server():
    return make_destroyable(MockServer())


@pytest.fixture
def destroy_log():
    return []


@pytest.fixture
def mock_conn_factory(destroy_log):
    def _make(**kwargs):
        kwargs.setdefault("destroy_log", destroy_log)
        return MockConnectionFactory(**kwargs)

    return _make


@pytest.fixture
async def tcp_server():
    async with TCPServerFactory.create_and_listen() as server:
        yield server


@pytest.fixture
def tls_contexts(tmp_path):
    """Server and client SSL contexts sharing a self-signed certificate."""
    private_key = rsa.generate_private_key(public_exponent=65537, key_size=2048)
    subject = issuer = x509.Name(
        [x509.NameAttribute(NameOID.COMMON_NAME, "localhost")]
    )
    now = datetime.datetime.now(datetime.timezone.utc)
    cert = (
        x509.CertificateBuilder()
        .subject_name(subject)
        .issuer_name(issuer)
        .public_key(private_key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now)
        .not_valid_after(now + datetime.timedelta(days=1))
        .sign(private_key, hashes.SHA256())
    )

    cert_path = tmp_path / "server.crt"
    key_path = tmp_path / "server.key"
    cert_path.write_bytes(cert.public_bytes(serialization.Encoding.PEM))
    key_path.write_bytes(
        private_key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.TraditionalOpenSSL,
            encryption_algorithm=serialization.NoEncryption(),
        )
    )

    server_context = ssl.create_default_context(ssl.Purpose.CLIENT_AUTH)
    server_context.load_cert_chain(str(cert_path), str(key_path))

    # Only the teardown is under test, not certificate validation
    client_context = ssl.create_default_context(ssl.Purpose.SERVER_AUTH)
    client_context.check_hostname = False
    client_context.verify_mode = ssl.CERT_NONE
    return server_context, client_context
