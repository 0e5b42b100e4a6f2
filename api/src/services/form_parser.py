"""
Strict URL form decoding for incoming requests.

Query strings and application/x-www-form-urlencoded bodies are decoded
with strict percent-escape handling: a malformed escape is an error rather
than being passed through untouched. Error messages are plain text meant to
be shown to the client as-is.
"""

from typing import Dict, List, Optional, Tuple

from starlette.requests import Request

FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"
BODY_FORM_METHODS = frozenset({"POST", "PUT", "PATCH"})

FormValues = Dict[str, List[str]]

_HEX_DIGITS = frozenset(b"0123456789abcdefABCDEF")
_TSPECIALS = frozenset('()<>@,;:\\"/[]?=')


class FormParseError(ValueError):
    """Raised when a query string or form body cannot be decoded."""


class InvalidMediaParameterError(FormParseError):
    """A Content-Type parameter is malformed although the media type parsed."""

    def __init__(self, media: str):
        super().__init__("mime: invalid media parameter")
        self.media_type = media


def _quote(raw: bytes) -> str:
    """Double-quote ``raw`` for an error message, escaping unprintable bytes."""
    parts = []
    for ch in raw.decode("utf-8", errors="surrogateescape"):
        code = ord(ch)
        if 0xDC80 <= code <= 0xDCFF:
            parts.append(f"\\x{code - 0xDC00:02x}")
        elif ch in '"\\':
            parts.append("\\" + ch)
        elif ch.isprintable():
            parts.append(ch)
        else:
            parts.append(ch.encode("unicode_escape").decode("ascii"))
    return '"' + "".join(parts) + '"'


def unescape(raw: bytes) -> str:
    """
    Decode one form component.

    ``+`` becomes a space and ``%XY`` becomes the byte 0xXY. The decoded
    bytes are read as UTF-8, replacing invalid sequences.

    Raises:
        FormParseError: On a ``%`` not followed by two hex digits
    """
    out = bytearray()
    i = 0
    n = len(raw)
    while i < n:
        c = raw[i]
        if c == 0x25:  # %
            if i + 2 >= n or raw[i + 1] not in _HEX_DIGITS or raw[i + 2] not in _HEX_DIGITS:
                raise FormParseError(f"invalid URL escape {_quote(raw[i:i + 3])}")
            out.append(int(raw[i + 1:i + 3], 16))
            i += 3
        elif c == 0x2B:  # +
            out.append(0x20)
            i += 1
        else:
            out.append(c)
            i += 1
    return out.decode("utf-8", errors="replace")


def parse_query(raw: bytes, into: Optional[FormValues] = None) -> FormValues:
    """
    Parse a URL-encoded query string into a multi-valued mapping.

    Pieces are separated by ``&``; empty pieces are skipped and a piece
    without ``=`` has an empty value. Values for a repeated key are kept in
    arrival order. Bad pieces are skipped and parsing carries on; a ``;``
    separator anywhere is reported in preference to the first bad escape.

    Args:
        raw: Encoded query string or form body
        into: Mapping to append to (a new one when omitted)

    Returns:
        The populated mapping

    Raises:
        FormParseError: On a ``;`` separator or a malformed escape
    """
    values: FormValues = {} if into is None else into
    error: Optional[FormParseError] = None
    semicolon = False

    for piece in raw.split(b"&"):
        if b";" in piece:
            semicolon = True
            continue
        if not piece:
            continue
        key, _, value = piece.partition(b"=")
        try:
            decoded_key = unescape(key)
            decoded_value = unescape(value)
        except FormParseError as exc:
            error = error or exc
            continue
        values.setdefault(decoded_key, []).append(decoded_value)

    if semicolon:
        raise FormParseError("invalid semicolon separator in query")
    if error is not None:
        raise error
    return values


def _is_token_char(ch: str) -> bool:
    return " " < ch < "\x7f" and ch not in _TSPECIALS


def _consume_token(v: str) -> Tuple[str, str]:
    for i, ch in enumerate(v):
        if not _is_token_char(ch):
            return v[:i], v[i:]
    return v, ""


def _consume_value(v: str) -> Tuple[str, str]:
    """Split a parameter value (token or quoted string) from the rest."""
    if not v.startswith('"'):
        return _consume_token(v)

    buffer = []
    i = 1
    while i < len(v):
        ch = v[i]
        if ch == '"':
            return "".join(buffer), v[i + 1:]
        # Backslash only escapes tspecials; anything else is a literal backslash
        if ch == "\\" and i + 1 < len(v) and v[i + 1] in _TSPECIALS:
            buffer.append(v[i + 1])
            i += 2
            continue
        if ch in "\r\n":
            return "", v
        buffer.append(ch)
        i += 1
    # Unterminated
    return "", v


def _consume_param(v: str) -> Tuple[str, str, str]:
    """
    Split one ``; name=value`` parameter off the front of ``v``.

    Returns ``("", "", v)`` when ``v`` does not start with a well-formed
    parameter.
    """
    rest = v.lstrip()
    if not rest.startswith(";"):
        return "", "", v
    name, rest = _consume_token(rest[1:].lstrip())
    if not name:
        return "", "", v
    rest = rest.lstrip()
    if not rest.startswith("="):
        return "", "", v
    rest = rest[1:].lstrip()
    value, after = _consume_value(rest)
    if not value and after == rest:
        return "", "", v
    return name.lower(), value, after


def _check_media_type(media: str) -> None:
    kind, rest = _consume_token(media)
    if not kind:
        raise FormParseError("mime: no media type")
    if not rest:
        return
    if not rest.startswith("/"):
        raise FormParseError("mime: expected slash after first token")
    subtype, rest = _consume_token(rest[1:])
    if not subtype:
        raise FormParseError("mime: expected token after slash")
    if rest:
        raise FormParseError("mime: unexpected content after media type")


def parse_media_type(content_type: str) -> Tuple[str, Dict[str, str]]:
    """
    Parse a Content-Type header into its lower-cased media type and
    parameters.

    Raises:
        FormParseError: When the media type is malformed or a parameter
            name repeats with a different value
        InvalidMediaParameterError: When a parameter is malformed; the
            media type itself parsed and is carried on the exception
    """
    base = content_type.split(";", 1)[0]
    media = base.lower().strip()
    _check_media_type(media)

    params: Dict[str, str] = {}
    rest = content_type[len(base):]
    while rest:
        rest = rest.lstrip()
        if not rest:
            break
        name, value, after = _consume_param(rest)
        if not name:
            # Trailing semicolons are tolerated
            if rest.strip() == ";":
                break
            raise InvalidMediaParameterError(media)
        if params.get(name, value) != value:
            raise FormParseError("mime: duplicate parameter name")
        params[name] = value
        rest = after
    return media, params


def media_type(content_type: Optional[str]) -> str:
    """
    Extract the lower-cased media type from a Content-Type header.

    A missing header is treated as ``application/octet-stream``.

    Raises:
        FormParseError: When the header cannot be parsed
    """
    if not content_type:
        return "application/octet-stream"
    return parse_media_type(content_type)[0]


async def read_form_body(request: Request, max_size: int) -> bytes:
    """
    Read the request body, refusing anything larger than ``max_size`` bytes.

    Raises:
        FormParseError: When the body exceeds the limit
    """
    body = bytearray()
    async for chunk in request.stream():
        body.extend(chunk)
        if len(body) > max_size:
            raise FormParseError("http: POST too large")
    return bytes(body)


async def parse_request_form(request: Request, max_size: int) -> FormValues:
    """
    Decode every form parameter of a request.

    For POST, PUT and PATCH requests with a form-encoded body the body is
    decoded first; query-string values are appended after it. Bodies of any
    other content type are left unread.

    Errors are reported in this order: an unparsable media type or an
    oversized body, a malformed Content-Type parameter, a malformed body,
    then a malformed query string. A malformed parameter does not stop a
    form body from being read.

    Args:
        request: Incoming request
        max_size: Maximum accepted body size in bytes

    Returns:
        Mapping of parameter name to all of its values

    Raises:
        FormParseError: On the highest-ranked decoding failure
    """
    values: FormValues = {}
    error: Optional[FormParseError] = None

    if request.method in BODY_FORM_METHODS:
        try:
            media = media_type(request.headers.get("content-type"))
        except InvalidMediaParameterError as exc:
            media, error = exc.media_type, exc

        if media == FORM_CONTENT_TYPE:
            body = await read_form_body(request, max_size)
            try:
                parse_query(body, into=values)
            except FormParseError as exc:
                error = error or exc

    try:
        parse_query(request.scope.get("query_string", b""), into=values)
    except FormParseError as exc:
        error = error or exc

    if error is not None:
        raise error
    return values
