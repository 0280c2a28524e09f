"""
Grafana OTLP Metrics Exporter
==============================

Pushes inference usage and pipeline health metrics to Grafana Cloud via
OTLP/HTTP JSON.

Metrics exported:
- inference_tokens_total / inference_input_tokens / inference_output_tokens
- inference_cost_usd
- inference_latency_ms
- pipeline_partial_failures
"""

import base64
import time
from decimal import Decimal
from typing import Any, Dict, List, Optional

import httpx

from helpdesk_intel.config import settings
from helpdesk_intel.shared.infrastructure.logging import get_logger

logger = get_logger(__name__)


class GrafanaOTLPExporter:
    """
    Export metrics to Grafana Cloud via the OTLP HTTP endpoint.

    Export failures are logged and reported as False; they never raise.
    """

    def __init__(
        self,
        host: Optional[str] = None,
        api_key: Optional[str] = None,
        instance_id: Optional[str] = None
    ):
        self._host = host or settings.grafana_host
        self._api_key = api_key or settings.grafana_api_key
        self._instance_id = instance_id or settings.grafana_instance_id
        self._enabled = bool(self._host and self._api_key and self._instance_id)
        self._url = ""
        self._auth_encoded = ""

        if self._enabled:
            auth_pair = f"{self._instance_id}:{self._api_key}"
            self._auth_encoded = base64.b64encode(auth_pair.encode()).decode()
            # Don't double-append the path if host already includes it
            if "/otlp/v1/metrics" in self._host:
                self._url = self._host
            else:
                self._url = f"{self._host.rstrip('/')}/otlp/v1/metrics"
            logger.info(
                "Grafana OTLP exporter initialized",
                extra={"host": self._host, "instance_id": self._instance_id}
            )

    def is_enabled(self) -> bool:
        """Check if exporter is properly configured."""
        return self._enabled

    @staticmethod
    def _attributes(values: Dict[str, Any]) -> List[dict]:
        return [
            {"key": key, "value": {"stringValue": str(value)}}
            for key, value in values.items()
        ]

    @staticmethod
    def _gauge(name: str, unit: str, value: Any, attributes: List[dict], timestamp_ns: int) -> dict:
        point = {"timeUnixNano": timestamp_ns, "attributes": attributes}
        if isinstance(value, int):
            point["asInt"] = value
        else:
            point["asDouble"] = float(value)
        return {"name": name, "unit": unit, "gauge": {"dataPoints": [point]}}

    async def _push(self, metrics: List[dict]) -> bool:
        payload = {
            "resourceMetrics": [
                {
                    "resource": {
                        "attributes": self._attributes({
                            "service.name": settings.app_name,
                            "service.version": settings.app_version,
                            "deployment.environment": settings.environment,
                        })
                    },
                    "scopeMetrics": [{"metrics": metrics}]
                }
            ]
        }
        headers = {
            "Content-Type": "application/json",
            "Authorization": f"Basic {self._auth_encoded}",
            "X-Grafana-Org-Id": str(self._instance_id)
        }

        try:
            async with httpx.AsyncClient(timeout=10.0) as client:
                response = await client.post(self._url, headers=headers, json=payload)
        except httpx.HTTPError as e:
            logger.error("Error exporting metrics to Grafana", extra={"error": str(e)})
            return False

        if response.status_code in (200, 202):
            return True

        logger.warning(
            "Failed to export metrics to Grafana",
            extra={"status_code": response.status_code, "response": response.text[:500]}
        )
        return False

    async def export_inference_usage(
        self,
        model_id: str,
        operation: str,
        input_tokens: int,
        output_tokens: int,
        cost: Decimal,
        latency_ms: int
    ) -> bool:
        """
        Export one governed inference call.

        Args:
            model_id: Model the call was billed against
            operation: Pipeline operation (analysis, response, learning, ...)
            input_tokens: Prompt tokens reported by the backend
            output_tokens: Completion tokens reported by the backend
            cost: Computed dollar cost
            latency_ms: Wall-clock latency of the call
        """
        if not self._enabled:
            return False

        timestamp_ns = int(time.time() * 1_000_000_000)
        attributes = self._attributes({
            "model": model_id,
            "operation": operation,
            "service": settings.app_name,
        })
        return await self._push([
            self._gauge("inference_tokens_total", "1", input_tokens + output_tokens, attributes, timestamp_ns),
            self._gauge("inference_input_tokens", "1", input_tokens, attributes, timestamp_ns),
            self._gauge("inference_output_tokens", "1", output_tokens, attributes, timestamp_ns),
            self._gauge("inference_cost_usd", "USD", cost, attributes, timestamp_ns),
            self._gauge("inference_latency_ms", "ms", latency_ms, attributes, timestamp_ns),
        ])

    async def export_partial_failure(self, stage: str, reason: str) -> bool:
        """Export a pipeline side-branch failure counter sample."""
        if not self._enabled:
            return False

        timestamp_ns = int(time.time() * 1_000_000_000)
        attributes = self._attributes({
            "stage": stage,
            "reason": reason,
            "service": settings.app_name,
        })
        return await self._push([
            self._gauge("pipeline_partial_failures", "1", 1, attributes, timestamp_ns)
        ])


# Global exporter instance
_grafana_exporter: Optional[GrafanaOTLPExporter] = None


def get_grafana_exporter() -> GrafanaOTLPExporter:
    """Get or create global Grafana exporter instance."""
    global _grafana_exporter
    if _grafana_exporter is None:
        _grafana_exporter = GrafanaOTLPExporter()
    return _grafana_exporter


def init_grafana_exporter(
    host: str,
    api_key: str,
    instance_id: str
) -> GrafanaOTLPExporter:
    """Initialize Grafana exporter with credentials."""
    global _grafana_exporter
    _grafana_exporter = GrafanaOTLPExporter(
        host=host,
        api_key=api_key,
        instance_id=instance_id
    )
    return _grafana_exporter
