# scripts/gen_schemas.py
"""
Generate JSON Schemas for the public Alchemist models.

Written files (schemas/):
    - business_rule.schema.json
    - priority_weights.schema.json
    - validation_result.schema.json
    - rules_config.schema.json
    - config.schema.json

Schemas use the camelCase wire names (by_alias), which is what the UI and the
exported rules configuration exchange.
"""

from __future__ import annotations

import json
from pathlib import Path

from pydantic import BaseModel

from alchemist.schemas.models import (
    BusinessRule,
    Config,
    PriorityWeights,
    RulesConfig,
    ValidationResult,
)

MODELS: dict[str, type[BaseModel]] = {
    "business_rule": BusinessRule,
    "priority_weights": PriorityWeights,
    "validation_result": ValidationResult,
    "rules_config": RulesConfig,
    "config": Config,
}


def export_schema(model_cls: type[BaseModel], name: str, out_dir: Path) -> Path:
    """
    @brief
    Write the JSON schema of one model as "<name>.schema.json".

    @returns
        Path of the written file.
    """
    out_dir.mkdir(parents=True, exist_ok=True)
    schema_path = (out_dir / f"{name}.schema.json").resolve()
    schema = model_cls.model_json_schema(by_alias=True)

    with schema_path.open("w", encoding="utf-8") as f:
        json.dump(schema, f, indent=2, ensure_ascii=False)
        f.write("\n")

    try:
        rel = schema_path.relative_to(Path.cwd())
    except ValueError:
        rel = schema_path
    print(f"Generated {rel}")
    return schema_path


def main(out_dir: Path | None = None) -> list[Path]:
    target = out_dir or Path("schemas").resolve()
    return [export_schema(model, name, target) for name, model in MODELS.items()]


if __name__ == "__main__":
    main()
