from typing import Optional
from typing import Union


def to_wire(text: Union[str, bytes, None]) -> Optional[bytes]:
    """Encodes text for the HTTP body.  Bytes are passed through unchanged."""
    if text is None:
        return None
    if isinstance(text, str):
        text = text.encode("utf-8")
    return text


def to_normal_str(text: Union[str, bytes, None]) -> Optional[str]:
    """
    Make sure we return a normal string, no matter if we were fed
    with bytes or str.  Line endings are normalized to "\\n".
    """
    if text is None:
        return text
    if not isinstance(text, str):
        text = text.decode("utf-8", errors="replace")
    text = text.replace("\r\n", "\n")
    return text
