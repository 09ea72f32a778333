"""
Conversion Report
=================
Post-scan summary of a conversion run:
    - Total blocks and breakdown by block type
    - Images resolved vs. replaced by a placeholder
    - Recoverable anomalies (unterminated fences/math, empty tables,
      unavailable images) and their breakdown by type

Nothing here changes the document; it only reports the fallbacks the
scanner already applied.
"""

from __future__ import annotations

import logging
from collections import Counter

from .models import Anomaly, Block, BlockType, ConversionReport

logger = logging.getLogger(__name__)


class ReportBuilder:
    """Builds a ConversionReport from scanner output."""

    def build(
        self,
        blocks: list[Block],
        anomalies: list[Anomaly],
    ) -> ConversionReport:
        type_counts = Counter(block.type.value for block in blocks)
        anomaly_counts = Counter(anomaly.type.value for anomaly in anomalies)

        report = ConversionReport(
            total_blocks=len(blocks),
            block_breakdown=dict(sorted(type_counts.items())),
            images_resolved=type_counts.get(BlockType.IMAGE.value, 0),
            images_unavailable=type_counts.get(BlockType.IMAGE_MISSING.value, 0),
            anomalies=list(anomalies),
            anomaly_breakdown=dict(sorted(anomaly_counts.items())),
        )

        self._log_summary(report)
        return report

    def _log_summary(self, report: ConversionReport):
        logger.info(
            f"Blocks: {report.total_blocks} | "
            f"Images: {report.images_resolved} resolved, "
            f"{report.images_unavailable} unavailable | "
            f"Anomalies: {len(report.anomalies)}"
        )
        for block_type, count in report.block_breakdown.items():
            logger.debug(f"  • {block_type}: {count}")
        for anomaly_type, count in report.anomaly_breakdown.items():
            logger.info(f"  • {anomaly_type}: {count}")
