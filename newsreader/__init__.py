"""Voice-driven news reader: question flow, article extraction, sentence reader."""

from newsreader.version import CURRENT_VERSION as __version__
