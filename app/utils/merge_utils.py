# app/utils/merge_utils.py
"""Firestore の set(..., merge=True) と同じ規則の差分・マージ

ネストしたマップはフィールド単位で扱い、配列とスカラーは丸ごと置き換える。
"""

import copy
from typing import Any, Dict


def diff_fields(old: Dict[str, Any], new: Dict[str, Any]) -> Dict[str, Any]:
    """old から new へ変わったフィールドだけを含むパッチを返す"""
    patch: Dict[str, Any] = {}
    for key, value in new.items():
        if key not in old:
            patch[key] = copy.deepcopy(value)
            continue
        before = old[key]
        if isinstance(before, dict) and isinstance(value, dict):
            nested = diff_fields(before, value)
            if nested:
                patch[key] = nested
        elif before != value:
            patch[key] = copy.deepcopy(value)
    return patch


def deep_merge(base: Dict[str, Any], patch: Dict[str, Any]) -> Dict[str, Any]:
    """base に patch を重ねた新しい dict（どちらも変更しない）"""
    merged = copy.deepcopy(base)
    for key, value in patch.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            merged[key] = deep_merge(current, value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged
