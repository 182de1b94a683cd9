from typing import Any

from django import forms


class PartialForm(forms.Form):
    """Schema for PATCH-style updates: every field optional, only sent keys count."""

    # fields that may be sent as "" to clear the stored value
    clearable: tuple[str, ...] = ()

    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)
        for field in self.fields.values():
            field.required = False

    def changes(self) -> dict[str, Any]:
        out = {}
        for k, v in self.cleaned_data.items():
            if k not in self.data or v is None:
                continue
            if v == "" and k not in self.clearable:
                continue
            out[k] = v
        return out
