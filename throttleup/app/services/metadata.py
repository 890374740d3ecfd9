"""Video metadata: loading from a JSON file and merging with CLI flags."""

import json
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from throttleup.app.core.logging import get_logger

logger = get_logger(__name__)


class Monetization(BaseModel):
    allowed: bool = False
    excluded_regions: List[str] = Field(default_factory=list)


class VideoMetadata(BaseModel):
    """Snippet, status and monetization details of the uploaded video.

    Field aliases follow the keys of the metadata JSON file
    (``categoryId``, ``privacyStatus``).
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    title: str = ""
    description: str = ""
    category_id: str = Field(default="", alias="categoryId")
    privacy_status: str = Field(default="", alias="privacyStatus")
    tags: Optional[List[str]] = None
    monetization: Monetization = Field(default_factory=Monetization)

    @property
    def parts(self) -> str:
        """Resource parts to send with the insert call."""
        parts = ["snippet", "status"]
        if self.monetization.allowed:
            parts.append("monetizationDetails")
        return ",".join(parts)

    def to_resource(self) -> Dict[str, Any]:
        """Build the JSON body of the video insert request."""
        snippet: Dict[str, Any] = {
            "title": self.title,
            "description": self.description,
        }
        if self.category_id:
            snippet["categoryId"] = self.category_id
        if self.tags:
            snippet["tags"] = list(self.tags)

        resource: Dict[str, Any] = {
            "snippet": snippet,
            "status": {"privacyStatus": self.privacy_status},
        }
        if self.monetization.allowed:
            resource["monetizationDetails"] = {
                "access": {
                    "allowed": True,
                    "exception": list(self.monetization.excluded_regions),
                }
            }
        return resource


def load_metadata(path: str | Path) -> VideoMetadata:
    """Read metadata from a JSON file.

    An unreadable or invalid file is not fatal: a warning is logged and
    empty metadata is returned so the command line flags apply instead.
    """
    try:
        raw = Path(path).read_text(encoding="utf-8")
        return VideoMetadata.model_validate(json.loads(raw))
    except (OSError, json.JSONDecodeError, ValidationError) as e:
        logger.warning(
            f"Could not read metadata file '{path}': {e}. Using command line flags instead"
        )
        return VideoMetadata()


def parse_tags(raw: str) -> Optional[List[str]]:
    """Split a comma separated tag list; None if there are no tags."""
    tags = [t.strip() for t in raw.split(",") if t.strip()]
    return tags or None


def build_metadata(
    meta: Optional[VideoMetadata] = None,
    *,
    title: str = "Video Title",
    description: str = "uploaded by throttleup",
    category_id: str = "",
    tags: str = "",
    privacy: str = "private",
) -> VideoMetadata:
    """Fill blanks in file metadata from command line values.

    Values from the metadata file win; flags only fill what the file left
    empty.
    """
    meta = meta or VideoMetadata()
    update: Dict[str, Any] = {}

    if not meta.title:
        update["title"] = title
    if not meta.description:
        update["description"] = description
    if not meta.category_id and category_id:
        update["category_id"] = category_id
    if not meta.privacy_status:
        update["privacy_status"] = privacy
    if meta.tags is None:
        update["tags"] = parse_tags(tags)

    return meta.model_copy(update=update)
