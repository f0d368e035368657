import base64
import mimetypes
from pathlib import Path

from gemini_chat.client.exceptions import TurnValidationError
from gemini_chat.schemas.chat import ImageAttachment

MAX_IMAGES_PER_TURN = 3
MAX_IMAGE_BYTES = 10 * 1024 * 1024


def load_image(path: str | Path) -> ImageAttachment:
    """Read an image file into a base64 attachment."""
    path = Path(path)
    mime_type, _ = mimetypes.guess_type(path.name)
    if not mime_type or not mime_type.startswith("image/"):
        raise TurnValidationError(f"{path.name} is not an image file.")
    if path.stat().st_size > MAX_IMAGE_BYTES:
        raise TurnValidationError(f"{path.name} is larger than 10MB.")

    return ImageAttachment(data=base64.b64encode(path.read_bytes()).decode("ascii"), mime_type=mime_type)
