from __future__ import annotations

from garment_recolor.edit.client import VariantEditClient, get_default_edit_client


def get_edit_client() -> VariantEditClient:
    return get_default_edit_client()
