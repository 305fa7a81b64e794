"""TLS policy resolution.

Turns the declarative ``minTLSVersion`` / ``cipherSuites`` names from the
controller config into concrete TLS parameters, and builds the server-side
SSL context for the metrics listener.

Names follow the Go ``crypto/tls`` spelling used across cluster configs
(``VersionTLS12``, ``TLS_ECDHE_RSA_WITH_AES_128_GCM_SHA256``).
"""

from __future__ import annotations

import ssl
from collections.abc import Iterable
from dataclasses import dataclass

from registry_operator.errors import ConfigurationError

DEFAULT_TLS_VERSION_NAME = "VersionTLS12"

TLS_VERSIONS: dict[str, ssl.TLSVersion] = {
    "VersionTLS10": ssl.TLSVersion.TLSv1,
    "VersionTLS11": ssl.TLSVersion.TLSv1_1,
    "VersionTLS12": ssl.TLSVersion.TLSv1_2,
    "VersionTLS13": ssl.TLSVersion.TLSv1_3,
}

# IANA name -> (IANA id, OpenSSL name). OpenSSL name is None for TLS 1.3
# suites, which OpenSSL does not let the server restrict.
CIPHER_SUITES: dict[str, tuple[int, str | None]] = {
    # TLS 1.0 - 1.2
    "TLS_RSA_WITH_RC4_128_SHA": (0x0005, "RC4-SHA"),
    "TLS_RSA_WITH_3DES_EDE_CBC_SHA": (0x000A, "DES-CBC3-SHA"),
    "TLS_RSA_WITH_AES_128_CBC_SHA": (0x002F, "AES128-SHA"),
    "TLS_RSA_WITH_AES_256_CBC_SHA": (0x0035, "AES256-SHA"),
    "TLS_RSA_WITH_AES_128_CBC_SHA256": (0x003C, "AES128-SHA256"),
    "TLS_RSA_WITH_AES_128_GCM_SHA256": (0x009C, "AES128-GCM-SHA256"),
    "TLS_RSA_WITH_AES_256_GCM_SHA384": (0x009D, "AES256-GCM-SHA384"),
    "TLS_ECDHE_ECDSA_WITH_RC4_128_SHA": (0xC007, "ECDHE-ECDSA-RC4-SHA"),
    "TLS_ECDHE_ECDSA_WITH_AES_128_CBC_SHA": (0xC009, "ECDHE-ECDSA-AES128-SHA"),
    "TLS_ECDHE_ECDSA_WITH_AES_256_CBC_SHA": (0xC00A, "ECDHE-ECDSA-AES256-SHA"),
    "TLS_ECDHE_RSA_WITH_RC4_128_SHA": (0xC011, "ECDHE-RSA-RC4-SHA"),
    "TLS_ECDHE_RSA_WITH_3DES_EDE_CBC_SHA": (0xC012, "ECDHE-RSA-DES-CBC3-SHA"),
    "TLS_ECDHE_RSA_WITH_AES_128_CBC_SHA": (0xC013, "ECDHE-RSA-AES128-SHA"),
    "TLS_ECDHE_RSA_WITH_AES_256_CBC_SHA": (0xC014, "ECDHE-RSA-AES256-SHA"),
    "TLS_ECDHE_ECDSA_WITH_AES_128_CBC_SHA256": (0xC023, "ECDHE-ECDSA-AES128-SHA256"),
    "TLS_ECDHE_RSA_WITH_AES_128_CBC_SHA256": (0xC027, "ECDHE-RSA-AES128-SHA256"),
    "TLS_ECDHE_ECDSA_WITH_AES_128_GCM_SHA256": (0xC02B, "ECDHE-ECDSA-AES128-GCM-SHA256"),
    "TLS_ECDHE_ECDSA_WITH_AES_256_GCM_SHA384": (0xC02C, "ECDHE-ECDSA-AES256-GCM-SHA384"),
    "TLS_ECDHE_RSA_WITH_AES_128_GCM_SHA256": (0xC02F, "ECDHE-RSA-AES128-GCM-SHA256"),
    "TLS_ECDHE_RSA_WITH_AES_256_GCM_SHA384": (0xC030, "ECDHE-RSA-AES256-GCM-SHA384"),
    "TLS_ECDHE_RSA_WITH_CHACHA20_POLY1305": (0xCCA8, "ECDHE-RSA-CHACHA20-POLY1305"),
    "TLS_ECDHE_ECDSA_WITH_CHACHA20_POLY1305": (0xCCA9, "ECDHE-ECDSA-CHACHA20-POLY1305"),
    "TLS_ECDHE_RSA_WITH_CHACHA20_POLY1305_SHA256": (0xCCA8, "ECDHE-RSA-CHACHA20-POLY1305"),
    "TLS_ECDHE_ECDSA_WITH_CHACHA20_POLY1305_SHA256": (0xCCA9, "ECDHE-ECDSA-CHACHA20-POLY1305"),
    # TLS 1.3
    "TLS_AES_128_GCM_SHA256": (0x1301, None),
    "TLS_AES_256_GCM_SHA384": (0x1302, None),
    "TLS_CHACHA20_POLY1305_SHA256": (0x1303, None),
}

# Only HTTP/1.1 is advertised; the h2 upgrade is never negotiated.
ALPN_PROTOCOLS = ["http/1.1"]


@dataclass(frozen=True, slots=True)
class TLSParameters:
    """Resolved TLS settings for a listener."""

    min_version: ssl.TLSVersion
    cipher_suite_ids: tuple[int, ...] = ()
    cipher_suite_names: tuple[str, ...] = ()

    def openssl_cipher_string(self) -> str:
        """OpenSSL cipher list for the TLS <= 1.2 suites, in declaration order."""
        names: list[str] = []
        for name in self.cipher_suite_names:
            openssl_name = CIPHER_SUITES[name][1]
            if openssl_name and openssl_name not in names:
                names.append(openssl_name)
        return ":".join(names)


def tls_version(name: str | None) -> ssl.TLSVersion:
    """Return the protocol version for a ``VersionTLS1x`` name.

    An empty name selects the default minimum, TLS 1.2.
    """
    if not name:
        name = DEFAULT_TLS_VERSION_NAME
    try:
        return TLS_VERSIONS[name]
    except KeyError:
        raise ConfigurationError(
            f"unknown tls version {name!r}; supported versions: {', '.join(TLS_VERSIONS)}"
        ) from None


def cipher_suite(name: str) -> int:
    """Return the IANA identifier of a named cipher suite."""
    try:
        return CIPHER_SUITES[name][0]
    except KeyError:
        raise ConfigurationError(f"unknown cipher suite {name!r}") from None


def resolve_tls_parameters(
    min_version_name: str | None,
    cipher_suite_names: Iterable[str] = (),
) -> TLSParameters:
    """Resolve version and cipher names into :class:`TLSParameters`.

    Resolution is all-or-nothing: any unrecognised name raises
    :class:`ConfigurationError` and nothing is returned.
    """
    try:
        min_version = tls_version(min_version_name)
    except ConfigurationError as e:
        raise ConfigurationError(f"failed to parse min tls version: {e}") from e

    names = tuple(cipher_suite_names)
    ids: list[int] = []
    for name in names:
        try:
            ids.append(cipher_suite(name))
        except ConfigurationError as e:
            raise ConfigurationError(f"failed to parse suite: {e}") from e

    return TLSParameters(
        min_version=min_version,
        cipher_suite_ids=tuple(ids),
        cipher_suite_names=names,
    )


def build_server_context(params: TLSParameters, cert_file: str, key_file: str) -> ssl.SSLContext:
    """Build a server-side SSL context enforcing ``params``.

    Raises:
        ConfigurationError: The cipher restriction is unusable or the
            certificate/key pair cannot be loaded.
    """
    context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
    context.minimum_version = params.min_version
    context.set_alpn_protocols(ALPN_PROTOCOLS)

    if params.cipher_suite_names:
        cipher_string = params.openssl_cipher_string()
        if cipher_string:
            try:
                context.set_ciphers(cipher_string)
            except ssl.SSLError as e:
                raise ConfigurationError(
                    f"no usable cipher suite in {list(params.cipher_suite_names)}: {e}"
                ) from e
        elif ssl.HAS_TLSv1_3:
            # Only TLS 1.3 suites declared, so no TLS 1.2 handshake can succeed.
            context.minimum_version = ssl.TLSVersion.TLSv1_3
        else:
            raise ConfigurationError(
                f"cipher suites {list(params.cipher_suite_names)} require TLS 1.3, "
                "which this OpenSSL build does not support"
            )

    try:
        context.load_cert_chain(certfile=cert_file, keyfile=key_file)
    except (OSError, ssl.SSLError) as e:
        raise ConfigurationError(f"failed to load serving certificate {cert_file}: {e}") from e

    return context
