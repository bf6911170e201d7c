from __future__ import annotations

import concurrent.futures
import logging
from abc import ABC, abstractmethod
from typing import Optional

from ..errors import ConfigError
from .types import ImageSignals, ReferenceMetadata, StyleEnhancement

logger = logging.getLogger(__name__)


class StyleEnhancer(ABC):
    """External capability that turns numeric signals into richer style language."""

    @property
    @abstractmethod
    def enhancer_id(self) -> str: ...

    @abstractmethod
    def enhance(self, signals: ImageSignals, metadata: ReferenceMetadata) -> StyleEnhancement:
        raise NotImplementedError


def build_enhancer(name: str) -> Optional[StyleEnhancer]:
    if name in ("", "none"):
        return None
    raise ConfigError(f"Unknown enhancer: '{name}'. Available enhancers: ['none']")


def enhance_with_timeout(
    enhancer: Optional[StyleEnhancer],
    signals: ImageSignals,
    metadata: ReferenceMetadata,
    timeout: float,
) -> Optional[StyleEnhancement]:
    """Call ``enhancer`` with a hard timeout; ``None`` when absent, slow or failing."""
    if enhancer is None:
        return None

    executor = concurrent.futures.ThreadPoolExecutor(max_workers=1)
    future = executor.submit(enhancer.enhance, signals, metadata)
    try:
        return future.result(timeout=timeout)
    except concurrent.futures.TimeoutError:
        logger.warning("Style enhancer %s timed out after %ss", enhancer.enhancer_id, timeout)
        return None
    except Exception as e:
        logger.warning("Style enhancer %s failed, using numeric analysis: %s", enhancer.enhancer_id, e)
        return None
    finally:
        executor.shutdown(wait=False)
