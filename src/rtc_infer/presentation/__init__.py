from .board import Box, DetectionBoard
from .labels import COCO_LABELS, label_for, load_labels

__all__ = ["Box", "DetectionBoard", "COCO_LABELS", "label_for", "load_labels"]
