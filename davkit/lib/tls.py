"""
TLS setup for DAVClient.

The SSL context allows TLS 1.2 and newer only, keeps the platform's
default cipher list and always verifies the host name.  Certificate
trust is checked against the system CAs first; if that fails, a
:class:`CertificateTrustManager` may accept the certificate (for
instance after asking the user).  An accepted certificate is added to
the trust store of the context, host name verification still applies.
"""

import hashlib
import logging
import ssl
import threading
from typing import Callable
from typing import Dict
from typing import Optional

from requests.adapters import HTTPAdapter

log = logging.getLogger(__name__)


def create_ssl_context(cafile: Optional[str] = None) -> ssl.SSLContext:
    context = ssl.create_default_context(cafile=cafile)
    ## SSLv2/3, TLS 1.0 and 1.1 are out
    context.minimum_version = ssl.TLSVersion.TLSv1_2
    context.verify_mode = ssl.CERT_REQUIRED
    context.check_hostname = True
    return context


def certificate_fingerprint(pem: str) -> str:
    """SHA-256 fingerprint of a PEM certificate, as colon separated hex"""
    digest = hashlib.sha256(ssl.PEM_cert_to_DER_cert(pem)).hexdigest().upper()
    return ":".join(digest[i : i + 2] for i in range(0, len(digest), 2))


class CertificateTrustManager:
    """
    Decides about certificates that could not be verified against
    the system CAs.  The default implementation trusts nothing.
    """

    def is_trusted(self, hostname: str, pem: str, fingerprint: str) -> bool:
        return False


class MemorizingTrustManager(CertificateTrustManager):
    """
    Remembers decisions per certificate fingerprint.  Unknown
    certificates are passed to ``ask(hostname, pem, fingerprint)``,
    which typically asks the user.
    """

    def __init__(
        self,
        ask: Optional[Callable[[str, str, str], bool]] = None,
        decisions: Optional[Dict[str, bool]] = None,
    ) -> None:
        self.ask = ask
        self.decisions: Dict[str, bool] = dict(decisions or {})
        self._lock = threading.Lock()

    def is_trusted(self, hostname: str, pem: str, fingerprint: str) -> bool:
        with self._lock:
            if fingerprint in self.decisions:
                return self.decisions[fingerprint]
        decision = bool(self.ask(hostname, pem, fingerprint)) if self.ask else False
        log.info(
            "certificate %s for %s %s",
            fingerprint,
            hostname,
            "accepted" if decision else "rejected",
        )
        with self._lock:
            self.decisions[fingerprint] = decision
        return decision


class TLSAdapter(HTTPAdapter):
    """
    Mounts our SSL context into the urllib3 pool manager.  urllib3
    sends SNI (server_hostname) on every handshake.
    """

    def __init__(self, ssl_context: Optional[ssl.SSLContext] = None, **kwargs) -> None:
        if not ssl.HAS_SNI:
            log.warning(
                "the ssl module lacks SNI support, servers with several certificates per IP address may fail"
            )
        self.ssl_context = ssl_context or create_ssl_context()
        super(TLSAdapter, self).__init__(**kwargs)

    def init_poolmanager(self, connections, maxsize, block=False, **pool_kwargs):
        pool_kwargs["ssl_context"] = self.ssl_context
        return super(TLSAdapter, self).init_poolmanager(
            connections, maxsize, block, **pool_kwargs
        )

    def proxy_manager_for(self, proxy, **proxy_kwargs):
        proxy_kwargs["ssl_context"] = self.ssl_context
        return super(TLSAdapter, self).proxy_manager_for(proxy, **proxy_kwargs)

    def trust_certificate(self, pem: str) -> None:
        """Adds a certificate to the trust store and drops pooled connections"""
        self.ssl_context.load_verify_locations(cadata=pem)
        self.poolmanager.clear()


def fetch_server_certificate(hostname: str, port: int, timeout: float) -> str:
    """The certificate the server presents, as PEM, without verifying it"""
    return ssl.get_server_certificate((hostname, port), timeout=timeout)
