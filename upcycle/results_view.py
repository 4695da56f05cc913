"""
Results view: project suggestions for a recognized item
Rendered as plain text for the console and as an image for the OpenCV window
"""

from typing import List, Optional, Tuple

import cv2
import numpy as np

from .projects import ProjectEntry, ProjectLink

BACKGROUND = (40, 40, 40)
HEADING_COLOR = (0, 255, 0)
TEXT_COLOR = (235, 235, 235)
HINT_COLOR = (160, 160, 160)
FONT = cv2.FONT_HERSHEY_SIMPLEX
MAX_NUMBERED_LINKS = 9


def collect_links(entries: List[ProjectEntry]) -> List[ProjectLink]:
    """All links of all entries in display order"""
    return [link for entry in entries for link in entry.links]


def format_results(label: Optional[str], entries: List[ProjectEntry]) -> List[str]:
    """
    Text lines describing the projects for a label

    Args:
        label: Recognized item label
        entries: Catalog entries for the label

    Returns:
        Lines with numbered links
    """
    lines = [f"DIY Projects for {label}:"]
    if not entries:
        lines.append("  No projects found for this item.")
        return lines

    number = 1
    for entry in entries:
        lines.append(f"  {entry.title}")
        for link in entry.links:
            lines.append(f"    [{number}] {link.title} - {link.source_label}")
            lines.append(f"        {link.url}")
            number += 1
    return lines


def _ascii(text: str) -> str:
    # Hershey fonts only cover ASCII
    return text.encode('ascii', 'ignore').decode('ascii').strip()


def render_results_panel(label: Optional[str], entries: List[ProjectEntry],
                         size: Tuple[int, int] = (640, 480)) -> np.ndarray:
    """
    Draw the results view as an image

    Args:
        label: Recognized item label
        entries: Catalog entries for the label
        size: (width, height) of the panel

    Returns:
        BGR image
    """
    width, height = size
    panel = np.full((height, width, 3), BACKGROUND, dtype=np.uint8)

    y = 40
    cv2.putText(panel, _ascii(f"DIY Projects for {label}:"), (20, y), FONT, 0.8, HEADING_COLOR, 2)
    y += 20

    if not entries:
        y += 30
        cv2.putText(panel, "No projects found for this item.", (20, y), FONT, 0.6, TEXT_COLOR, 1)

    number = 1
    for entry in entries:
        y += 35
        cv2.putText(panel, _ascii(entry.title), (20, y), FONT, 0.7, TEXT_COLOR, 2)
        for link in entry.links:
            y += 28
            prefix = f"[{number}] " if number <= MAX_NUMBERED_LINKS else ""
            text = _ascii(f"{prefix}{link.title} - {link.source_label}")
            cv2.putText(panel, text, (40, y), FONT, 0.55, TEXT_COLOR, 1)
            number += 1

    cv2.putText(panel, "Press 1-9 to open a link, R to scan another item, Q to quit",
                (20, height - 20), FONT, 0.5, HINT_COLOR, 1)
    return panel
