from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from chat_proxy.providers.base import CompletionOptions

PROVIDER_KINDS = {"openai", "anthropic"}
DEFAULT_MAX_TOKENS = 1000
DEFAULT_TEMPERATURE = 0.7


@dataclass(frozen=True)
class ProviderConfig:
    name: str
    kind: str
    credential: str
    upstream_model: str
    base_url: str | None = None
    defaults: dict[str, Any] = field(default_factory=dict)

    def resolve_options(self, *, max_tokens: int | None = None, temperature: float | None = None) -> CompletionOptions:
        """Merge per-request options over catalogue defaults."""

        if max_tokens is None:
            max_tokens = int(self.defaults.get("max_tokens", DEFAULT_MAX_TOKENS))
        if temperature is None:
            temperature = float(self.defaults.get("temperature", DEFAULT_TEMPERATURE))
        return CompletionOptions(max_tokens=max_tokens, temperature=temperature)


@dataclass(frozen=True)
class ProvidersConfig:
    providers: dict[str, ProviderConfig]


def load_providers_config(config_path: str) -> ProvidersConfig:
    parsed = yaml.safe_load(Path(config_path).read_text(encoding="utf-8"))
    if not isinstance(parsed, dict) or "providers" not in parsed:
        raise ValueError("providers config must contain a providers map")

    raw_providers = parsed["providers"]
    if not isinstance(raw_providers, dict):
        raise ValueError("providers must be a map")

    providers: dict[str, ProviderConfig] = {}
    for name, payload in raw_providers.items():
        if not isinstance(payload, dict):
            raise ValueError(f"provider {name} must be a map")
        kind = str(payload.get("kind", "")).strip()
        credential = str(payload.get("credential", "")).strip()
        upstream_model = str(payload.get("upstream_model", "")).strip()
        base_url = payload.get("base_url") or None
        defaults = payload.get("defaults", {}) or {}
        if kind not in PROVIDER_KINDS or not credential or not upstream_model:
            raise ValueError(f"provider {name} missing required kind/credential/upstream_model")
        if not isinstance(defaults, dict):
            raise ValueError(f"provider {name} defaults must be a map")
        providers[str(name)] = ProviderConfig(
            name=str(name),
            kind=kind,
            credential=credential,
            upstream_model=upstream_model,
            base_url=str(base_url) if base_url else None,
            defaults=defaults,
        )
    return ProvidersConfig(providers=providers)
