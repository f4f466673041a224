"""Build the scaled-object manifest that drives external push scaling."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional

SO_POLLING_INTERVAL = 15
SO_TRIGGER_TYPE = "external-push"
SCALER_ADDRESS_KEY = "scalerAddress"
HTTP_SCALED_OBJECT_KEY = "httpScaledObject"

_API_VERSION = "keda.sh/v1alpha1"
_KIND = "ScaledObject"


@dataclass(frozen=True)
class ScaleTargetRef:
    """The workload to scale."""

    name: str
    kind: str = ""
    api_version: str = ""


def _without_empty(values: Dict[str, Any]) -> Dict[str, Any]:
    return {key: value for key, value in values.items() if value not in (None, "")}


def new_scaled_object(
    namespace: str,
    name: str,
    labels: Optional[Mapping[str, str]],
    annotations: Optional[Mapping[str, str]],
    workload_ref: ScaleTargetRef,
    scaler_address: str,
    min_replicas: Optional[int],
    max_replicas: Optional[int],
    cooldown_period: Optional[int],
) -> Dict[str, Any]:
    """A scaled-object manifest; unset optional fields are left out."""
    metadata = _without_empty(
        {
            "namespace": namespace,
            "name": name,
            "labels": dict(labels) if labels is not None else None,
            "annotations": dict(annotations) if annotations is not None else None,
        }
    )
    spec = _without_empty(
        {
            "scaleTargetRef": _without_empty(
                {
                    "apiVersion": workload_ref.api_version,
                    "kind": workload_ref.kind,
                    "name": workload_ref.name,
                }
            ),
            "pollingInterval": SO_POLLING_INTERVAL,
            "cooldownPeriod": cooldown_period,
            "minReplicaCount": min_replicas,
            "maxReplicaCount": max_replicas,
            "advanced": {"restoreToOriginalReplicaCount": True},
            "triggers": [
                {
                    "type": SO_TRIGGER_TYPE,
                    "metadata": {
                        SCALER_ADDRESS_KEY: scaler_address,
                        HTTP_SCALED_OBJECT_KEY: name,
                    },
                }
            ],
        }
    )
    return {"apiVersion": _API_VERSION, "kind": _KIND, "metadata": metadata, "spec": spec}