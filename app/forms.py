from flask import abort, jsonify, request
from flask_wtf import FlaskForm
from werkzeug.datastructures import MultiDict


def flatten_payload(data, prefix="", out=None) -> MultiDict:
    """Flatten nested JSON into WTForms field names.

    ``{"age": {"value": 3}}`` becomes ``age-value``, lists become
    ``images-0``, ``images-1``... which is what FormField and FieldList read.
    """
    if out is None:
        out = MultiDict()
    if isinstance(data, dict):
        for key, value in data.items():
            flatten_payload(value, f"{prefix}-{key}" if prefix else str(key), out)
    elif isinstance(data, (list, tuple)):
        for i, value in enumerate(data):
            flatten_payload(value, f"{prefix}-{i}", out)
    elif data is None:
        pass
    elif isinstance(data, bool):
        out.add(prefix, "true" if data else "false")
    else:
        out.add(prefix, str(data))
    return out


def json_payload() -> dict:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        abort(400, description="Request body must be a JSON object")
    return data


class ApiForm(FlaskForm):
    class Meta:
        csrf = False


def validation_error(form):
    resp = jsonify(success=False, message="Validation failed", errors=form.errors)
    resp.status_code = 400
    return resp
