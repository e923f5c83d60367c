"""Exception taxonomy for the gemini client.

TransportError   connection / TLS / socket I/O, fatal to the session
ParseError       malformed response framing, fatal to the step
LinkResolutionError  unresolvable href or self-link without history
NavigationError  back/reload with insufficient history
"""


class ClientError(Exception):
    """Base class for every error raised by the client."""


class InvalidURL(ClientError, ValueError):
    pass


# -----------------------
# Transport
# -----------------------
class TransportError(ClientError):
    pass


class MissingHost(TransportError):
    def __init__(self, url):
        super().__init__(f"Missing host in URL: {url}")


class ConnectError(TransportError):
    pass


class TlsError(TransportError):
    pass


class HandshakeError(TransportError):
    pass


# -----------------------
# Response parsing
# -----------------------
class ParseError(ClientError):
    pass


class EmptyResponse(ParseError):
    def __init__(self):
        super().__init__("Response is empty")


class MissingStatusCode(ParseError):
    def __init__(self):
        super().__init__("Missing status code in response")


class InvalidStatusCode(ParseError):
    def __init__(self, token):
        self.token = token
        super().__init__(f"Invalid status code in response: {token!r}")


class MissingMetaDescription(ParseError):
    def __init__(self):
        super().__init__("Missing meta description in response")


# -----------------------
# Links / history
# -----------------------
class LinkResolutionError(ClientError):
    pass


class NavigationError(ClientError):
    pass


class NoPreviousLocation(LinkResolutionError, NavigationError):
    def __init__(self, message="No previous location in history"):
        super().__init__(message)


class RelativeResolutionError(LinkResolutionError):
    def __init__(self, link, reason):
        self.link = link
        super().__init__(f"Could not resolve {link!r}: {reason}")
