"""
Volume processors package.

Modules:
- normalize: NaN/Inf sanitizing, min-max normalization, 8-bit quantization
- contrast: Adaptive (peak-shift / percentile) contrast enhancement
- histogram: Shared 256-bin histogram helpers
- target_histogram: Target distribution sampling from reference images
- matching: Histogram specification with monotonic mapping tables
- postprocess: Median filter and inter-slice blending
- quality: Histogram similarity metrics
"""

from processors.contrast import ContrastEnhancementProcessor, enhance
from processors.matching import HistogramMatchingProcessor, MappingTable, build_mapping_table, match_volume
from processors.postprocess import PostProcessor, post_process_volume
from processors.quality import QualityMetrics, compute_quality_metrics, evaluate_histograms
from processors.target_histogram import TargetHistogram, TargetHistogramSampler

__all__ = [
    'ContrastEnhancementProcessor',
    'enhance',
    'HistogramMatchingProcessor',
    'MappingTable',
    'build_mapping_table',
    'match_volume',
    'PostProcessor',
    'post_process_volume',
    'QualityMetrics',
    'compute_quality_metrics',
    'evaluate_histograms',
    'TargetHistogram',
    'TargetHistogramSampler',
]
