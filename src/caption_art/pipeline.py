from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from .analysis.analyzer import CachedStyleAnalyzer, StyleAnalyzer
from .brand import BrandStore
from .cache.store import RenderCache
from .config import PipelineConfig
from .render.renderer import CreativeRenderer
from .segmentation import Segmenter, build_segmenter

logger = logging.getLogger(__name__)


@dataclass
class Pipeline:
    config: PipelineConfig
    cache: RenderCache
    analyzer: CachedStyleAnalyzer
    renderer: CreativeRenderer
    brands: BrandStore
    segmenter: Segmenter


def build_pipeline(config: PipelineConfig, segmenter: Optional[Segmenter] = None) -> Pipeline:
    """Construct the process-wide cache, analyzer and renderer from ``config``.

    Directories for the cache and generated output are created here; failures
    propagate to the caller.
    """
    cache = RenderCache.from_settings(config.cache)
    segmenter = segmenter or build_segmenter(config.segmentation.segmenter)
    analyzer = CachedStyleAnalyzer(
        StyleAnalyzer.from_settings(config.analyzer),
        cache,
        ttl=config.analyzer.result_ttl_sec,
    )
    renderer = CreativeRenderer.from_settings(cache, config.render, config.segmentation, segmenter=segmenter)
    brands = BrandStore.from_yaml(config.brands_file)

    logger.info(
        "Pipeline ready (cache=%s, output=%s, segmenter=%s, brands=%d)",
        config.cache.dir,
        config.render.output_dir,
        segmenter.segmenter_id,
        len(brands.workspaces()),
    )
    return Pipeline(
        config=config,
        cache=cache,
        analyzer=analyzer,
        renderer=renderer,
        brands=brands,
        segmenter=segmenter,
    )
