"""
Upload boundary: the editor never handles file bytes itself, it only sees
what an uploader reports back (url, type, size) and stores the url.
"""
import logging
import re
from typing import Optional, Union

from pydantic import BaseModel, Field

from .config import get_settings
from .editing import update_settings
from .exceptions import AnswerRejected, ValidationRejected
from .questions import FilePayload, ImagePayload, Question, VideoPayload
from .validators import validate_file

logger = logging.getLogger(__name__)

_YOUTUBE_RE = re.compile(
    r"(?:https?://)?(?:www\.|m\.)?(?:youtube\.com/(?:watch\?(?:.*&)?v=|embed/|shorts/)|youtu\.be/)([\w-]{11})"
)


class UploadResult(BaseModel):
    """What an uploader returns for one stored file"""
    url: str = Field(..., min_length=1)
    mime_type: str
    size_bytes: int = Field(..., ge=0)
    filename: Optional[str] = None


def check_upload(question: Question, upload: UploadResult) -> None:
    """Reject an uploaded file that breaks the question's type or size rules"""
    payload = question.payload
    if not isinstance(payload, FilePayload):
        raise AnswerRejected("This question does not accept files.")
    limit = get_settings().MAX_UPLOAD_SIZE_MB * 1024 * 1024
    max_size = min(payload.max_file_size, limit) if payload.max_file_size else limit
    error = validate_file(upload.mime_type, upload.size_bytes, payload.file_types, max_size)
    if error:
        logger.info(f"Rejected upload {upload.filename or upload.url} for question {question.id}: {error}")
        raise AnswerRejected(error)


def attach_image(
    question: Question,
    image: Union[UploadResult, str],
    alt: Optional[str] = None,
    title: Optional[str] = None,
) -> Question:
    """Point an image question at an uploaded file or an external url"""
    if not isinstance(question.payload, ImagePayload):
        return question
    if isinstance(image, UploadResult):
        if not image.mime_type.startswith("image/"):
            raise ValidationRejected("Please choose an image file.")
        url = image.url
    else:
        url = (image or "").strip()
        if not url:
            raise ValidationRejected("Please enter an image URL.")

    settings = {"image_url": url}
    if alt is not None:
        settings["image_alt"] = alt
    if title is not None:
        settings["image_title"] = title
    return update_settings(question, **settings)


def attach_video(
    question: Question,
    video: Union[UploadResult, str],
    title: Optional[str] = None,
    description: Optional[str] = None,
) -> Question:
    if not isinstance(question.payload, VideoPayload):
        return question
    if isinstance(video, UploadResult):
        if not video.mime_type.startswith("video/"):
            raise ValidationRejected("Please choose a video file.")
        url = video.url
    else:
        url = (video or "").strip()
        if not url:
            raise ValidationRejected("Please enter a video URL.")

    settings = {"video_url": url}
    if title is not None:
        settings["video_title"] = title
    if description is not None:
        settings["video_description"] = description
    return update_settings(question, **settings)


def video_embed_url(url: Optional[str]) -> Optional[str]:
    """Embeddable player url for YouTube links; None for anything else"""
    if not url:
        return None
    match = _YOUTUBE_RE.match(url.strip())
    if not match:
        return None
    return f"https://www.youtube.com/embed/{match.group(1)}"
