"""
DIY recycling project catalog
Static lookup from a detected label to project ideas and links
"""

import json
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

YOUTUBE_ID_PATTERN = re.compile(
    r"(?:youtu\.be/|youtube\.com/(?:embed/|v/|watch\?v=|watch\?.+&v=))([^&?]+)"
)


def youtube_thumbnail(url: str) -> Optional[str]:
    """Thumbnail URL for a YouTube video link, None for anything else"""
    match = YOUTUBE_ID_PATTERN.search(url)
    if not match:
        return None
    return f"https://img.youtube.com/vi/{match.group(1)}/mqdefault.jpg"


@dataclass
class ProjectLink:
    type: str  # "video" or "article"
    title: str
    url: str
    thumbnail: Optional[str] = None
    source: Optional[str] = None

    def __post_init__(self):
        if self.type == "video" and not self.thumbnail:
            self.thumbnail = youtube_thumbnail(self.url)

    @property
    def source_label(self) -> str:
        if self.type == "video":
            return "YouTube Tutorial"
        return self.source or ""


@dataclass
class ProjectEntry:
    title: str
    links: List[ProjectLink] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict) -> "ProjectEntry":
        return cls(
            title=data["title"],
            links=[ProjectLink(**link) for link in data.get("links", [])],
        )


DEFAULT_PROJECTS = {
    "bottle": [
        {
            "title": "♻️ Plastic Bottle Projects",
            "links": [
                {
                    "type": "video",
                    "title": "Self-Watering Plant System",
                    "url": "https://youtu.be/9HIC__5x404",
                },
                {
                    "type": "article",
                    "title": "25 Brilliant Bottle Recycling Ideas",
                    "url": "https://www.boredpanda.com/plastic-bottle-recycling-ideas/",
                    "source": "Bored Panda",
                },
            ],
        },
    ],
    "cup": [
        {
            "title": "🖊️ Cup Upcycling Ideas",
            "links": [
                {
                    "type": "video",
                    "title": "DIY Pen Holder from Plastic Cups",
                    "url": "https://www.youtube.com/watch?v=5keP9lY5VII",
                },
                {
                    "type": "article",
                    "title": "10 Creative Uses for Old Cups",
                    "url": "https://www.upcyclethat.com/plastic-cup-projects/",
                    "source": "Upcycle That",
                },
            ],
        },
    ],
}


class ProjectCatalog:
    """Read-only label -> project entries lookup"""

    def __init__(self, projects: Optional[Dict[str, List[Dict]]] = None):
        self.logger = logging.getLogger(__name__)
        raw = DEFAULT_PROJECTS if projects is None else projects
        self._entries: Dict[str, List[ProjectEntry]] = {
            label: [ProjectEntry.from_dict(entry) for entry in entries]
            for label, entries in raw.items()
        }

    @classmethod
    def from_file(cls, path: str) -> "ProjectCatalog":
        """
        Load a catalog from JSON shaped like DEFAULT_PROJECTS

        Args:
            path: JSON file path
        """
        with open(Path(path), 'r', encoding='utf-8') as f:
            projects = json.load(f)
        catalog = cls(projects)
        catalog.logger.info(f"Loaded project catalog from {path}: {sorted(projects)}")
        return catalog

    def lookup(self, label: Optional[str]) -> List[ProjectEntry]:
        if not label:
            return []
        return list(self._entries.get(label, []))
