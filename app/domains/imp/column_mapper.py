# app/domains/imp/column_mapper.py

"""
업로드 파일의 헤더를 표준 필드에 매핑하는 모듈입니다.

매핑은 순수 함수이며 같은 헤더 목록에 대해 항상 같은 결과를 돌려줍니다.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from app.domains.lims.models import EntityType

from .field_maps import FieldSpec, get_field_map


@dataclass
class ColumnMapping:
    """컬럼 인덱스 → 표준 필드 매핑과 사용자에게 보여줄 매핑 피드백."""
    columns: Dict[int, str] = field(default_factory=dict)
    feedback: Dict[str, Any] = field(default_factory=dict)

    @property
    def fields(self) -> List[str]:
        return list(self.columns.values())

    def apply(self, values: Sequence[Any]) -> Dict[str, Any]:
        """행 값 배열을 {필드: 값} 딕셔너리로 변환합니다."""
        return {name: (values[idx] if idx < len(values) else None) for idx, name in self.columns.items()}


def _claim(header: str, specs: Sequence[FieldSpec]) -> Optional[Tuple[FieldSpec, int]]:
    """
    헤더가 매핑될 필드와 일치한 별칭의 인덱스를 찾습니다.
    모든 필드에서 정확히 일치하는 별칭을 먼저 찾고, 없을 때만 대소문자를 무시하고 다시 찾습니다.
    어느 단계든 테이블 순서상 처음 일치하는 필드 하나에만 매핑됩니다.
    """
    for spec in specs:
        if header in spec.aliases:
            return spec, spec.aliases.index(header)
    lowered = header.lower()
    for spec in specs:
        for idx, alias in enumerate(spec.aliases):
            if alias.lower() == lowered:
                return spec, idx
    return None


def map_columns(entity_type: EntityType, headers: Sequence[Any]) -> ColumnMapping:
    specs = get_field_map(entity_type)

    # field name -> [(alias rank, column index, header)]
    candidates: Dict[str, List[Tuple[int, int, str]]] = {}
    unmatched: List[str] = []
    total_columns = 0

    for column_index, raw in enumerate(headers):
        header = str(raw).strip() if raw is not None else ""
        if not header:
            continue
        total_columns += 1
        claimed = _claim(header, specs)
        if claimed is None:
            unmatched.append(header)
            continue
        spec, rank = claimed
        candidates.setdefault(spec.name, []).append((rank, column_index, header))

    columns: Dict[int, str] = {}
    mapped: Dict[str, str] = {}
    conflicts: List[Dict[str, Any]] = []
    unsupported: List[str] = []

    for spec in specs:
        found = candidates.get(spec.name)
        if not found:
            continue
        found.sort()
        _, column_index, chosen = found[0]

        if len(found) > 1:
            # 파일 컬럼 순서
            headers_in_file = [header for _, _, header in sorted(found, key=lambda c: c[1])]
            names = ", ".join(headers_in_file)
            conflicts.append({
                "field": spec.name,
                "headers": headers_in_file,
                "chosen": chosen,
                "losers": [header for _, _, header in found[1:]],
                "message": f'Multiple columns found for {spec.name}: {names}. Using "{chosen}".',
            })

        if not spec.persisted:
            unsupported.extend(header for _, _, header in found)
            continue
        columns[column_index] = spec.name
        mapped[chosen] = spec.name

    warnings: List[Dict[str, Any]] = []
    if unmatched:
        warnings.append({
            "type": "unmatched_columns",
            "severity": "info",
            "message": f"{len(unmatched)} column(s) were not recognized and will be ignored: {', '.join(unmatched)}",
            "columns": unmatched,
        })
    if unsupported:
        warnings.append({
            "type": "unsupported_columns",
            "severity": "warning",
            "message": f"{len(unsupported)} column(s) are recognized but not stored: {', '.join(unsupported)}",
            "columns": unsupported,
        })
    for conflict in conflicts:
        warnings.append({
            "type": "column_conflict",
            "severity": "warning",
            "message": conflict["message"],
            "columns": conflict["headers"],
        })

    missing_required = [
        spec.name for spec in specs if spec.required and spec.name not in columns.values()
    ]
    feedback = {
        "mapped": mapped,
        "conflicts": conflicts,
        "unmatched": unmatched,
        "unsupported": unsupported,
        "warnings": warnings,
        "summary": {
            "total_columns": total_columns,
            "mapped_count": len(mapped),
            "unmapped_count": len(unmatched),
            "conflict_count": len(conflicts),
            "unsupported_count": len(unsupported),
            "missing_required": missing_required,
        },
    }
    return ColumnMapping(columns=columns, feedback=feedback)
