"""Attachment and thread features."""

import numpy as np


class MediaFeatureExtractor:
    """Extract the 3 media features: attachment flag, count proxy, in-thread."""

    def extract(self, message) -> np.ndarray:
        has_attachments = bool(message.has_attachments)
        return np.array(
            [
                1.0 if has_attachments else 0.0,
                # no per-file count is delivered with the message
                0.5 if has_attachments else 0.0,
                1.0 if message.in_thread else 0.0,
            ],
            dtype=np.float32,
        )
