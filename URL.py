import socket
import ssl
from typing import Optional
from urllib.parse import quote, urljoin, urlsplit, urlunsplit

import structlog

from errors import (
    ConnectError,
    HandshakeError,
    InvalidURL,
    MissingHost,
    TlsError,
)

log = structlog.get_logger(__name__)

GEMINI_SCHEME = "gemini"
DEFAULT_PORT = 1965
RECV_SIZE = 4096
JOIN_SCHEME = "http"


class URL:
    """Immutable, structurally comparable location.

    Any scheme parses (so `https://` and `mailto:` links can be recognised
    and handed off), but only `gemini://` locations can be requested.
    """

    __slots__ = ("_scheme", "_host", "_port", "_path", "_query")

    def __init__(self, url: str):
        # 더 안정적인 파싱을 위해 urllib.parse 사용
        text = url.strip()
        try:
            parsed = urlsplit(text)
            port = parsed.port
        except ValueError as e:
            raise InvalidURL(f"Could not parse URL {url!r}: {e}") from e
        if not parsed.scheme:
            raise InvalidURL(f"URL has no scheme: {url!r}")

        host = parsed.hostname or ""
        path = parsed.path
        # 호스트가 있는데 경로가 비어있으면 "/"로 맞춘다
        if host and not path:
            path = "/"

        object.__setattr__(self, "_scheme", parsed.scheme.lower())
        object.__setattr__(self, "_host", host)
        object.__setattr__(self, "_port", port)
        object.__setattr__(self, "_path", path)
        object.__setattr__(self, "_query", parsed.query or None)

    def __setattr__(self, name, value):
        raise AttributeError("URL is immutable")

    @classmethod
    def _build(cls, scheme, host, port, path, query) -> "URL":
        new = object.__new__(cls)
        for name, value in (("_scheme", scheme), ("_host", host), ("_port", port),
                            ("_path", path), ("_query", query)):
            object.__setattr__(new, name, value)
        return new

    @property
    def scheme(self) -> str:
        return self._scheme

    @property
    def host(self) -> str:
        return self._host

    @property
    def port(self) -> Optional[int]:
        """Explicit port, or None when the URL did not carry one."""
        return self._port

    @property
    def path(self) -> str:
        return self._path

    @property
    def query(self) -> Optional[str]:
        return self._query

    @property
    def is_gemini(self) -> bool:
        return self._scheme == GEMINI_SCHEME

    @property
    def netloc(self) -> str:
        host = f"[{self._host}]" if ":" in self._host else self._host
        if self._port is not None:
            return f"{host}:{self._port}"
        return host

    def _key(self):
        return (self._scheme, self._host, self._port, self._path, self._query)

    def __eq__(self, other):
        if not isinstance(other, URL):
            return NotImplemented
        return self._key() == other._key()

    def __hash__(self):
        return hash(self._key())

    def __str__(self):
        return urlunsplit((self._scheme, self.netloc, self._path, self._query or "", ""))

    def __repr__(self):
        return f"URL({str(self)!r})"

    def join(self, reference: str) -> "URL":
        if urlsplit(reference).scheme:
            return URL(reference)
        # urljoin은 http 같은 알려진 스킴만 상대 경로로 합쳐준다
        base = urlunsplit((JOIN_SCHEME, self.netloc, self._path, self._query or "", ""))
        joined = urlsplit(urljoin(base, reference))
        return URL(urlunsplit((self._scheme,) + tuple(joined[1:])))

    def with_query(self, query: Optional[str]) -> "URL":
        encoded = quote(query, safe="") if query is not None else None
        return URL._build(self._scheme, self._host, self._port, self._path, encoded or None)

    def request_line(self) -> str:
        query = f"?{self._query}" if self._query else ""
        return f"{self._scheme}://{self.netloc}{self._path}{query}\r\n"

    def request(self, timeout: Optional[float] = None, verify: bool = False) -> str:
        """서버에 요청 한 줄을 보내고 스트림이 끝날 때까지 응답을 읽는다"""
        if not self._host:
            raise MissingHost(str(self))
        port = self._port or DEFAULT_PORT

        # 1. TLS 컨텍스트 (자체 서명 인증서가 일반적이라 기본은 검증 안 함)
        try:
            if verify:
                ctx = ssl.create_default_context()
            else:
                ctx = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
                ctx.check_hostname = False
                ctx.verify_mode = ssl.CERT_NONE
        except ssl.SSLError as e:
            raise TlsError(f"TLS error: {e}") from e

        # 2. 서버에 연결
        log.debug("connecting", host=self._host, port=port)
        try:
            raw = socket.create_connection((self._host, port), timeout=timeout)
        except OSError as e:
            raise ConnectError(f"Network error connecting to {self._host}:{port} - {e}") from e

        # 3. TLS 핸드셰이크
        try:
            s = ctx.wrap_socket(raw, server_hostname=self._host)
        except ssl.SSLError as e:
            raw.close()
            raise HandshakeError(f"Handshake error: {e}") from e
        except OSError as e:
            raw.close()
            raise ConnectError(f"Network error during handshake with {self._host}:{port} - {e}") from e

        with s:
            request = self.request_line()
            log.debug("sending request", request=request)
            try:
                s.sendall(request.encode("utf8"))
                body = self._read_to_end(s)
            except ssl.SSLError as e:
                raise TlsError(f"TLS error: {e}") from e
            except OSError as e:
                raise ConnectError(f"I/O error: {e}") from e

        log.debug("response received", url=str(self), size=len(body))
        return body.decode("utf8", errors="replace")

    @staticmethod
    def _read_to_end(s) -> bytes:
        # 길이 정보가 없으므로 소켓이 닫힐 때까지 읽음
        chunks = []
        while True:
            try:
                data = s.recv(RECV_SIZE)
            except (ssl.SSLZeroReturnError, ssl.SSLEOFError):
                # close_notify 없이 끊는 서버도 많다
                break
            if not data:
                break
            chunks.append(data)
        return b"".join(chunks)


def initialize_url(text: str) -> URL:
    """Parse user input, assuming the gemini scheme when none was typed."""
    text = text.strip()
    if not text.startswith(f"{GEMINI_SCHEME}://"):
        text = f"{GEMINI_SCHEME}://{text}"
    return URL(text)
