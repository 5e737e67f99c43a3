from flask import request
from marshmallow import ValidationError

from errors import ValidationFailed


def get_json_body():
    """Request JSON object or ValidationFailed"""
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationFailed({'_schema': ['Request body must be a JSON object']},
                               message='Request body must be JSON')
    return data


def validate_request_data(schema_class, data):
    """
    Shared input validation

    Returns the loaded data; marshmallow errors become ValidationFailed
    with the field messages as details.
    """
    schema = schema_class()
    try:
        return schema.load(data)
    except ValidationError as err:
        raise ValidationFailed(err.messages)


def load_request(schema_class):
    return validate_request_data(schema_class, get_json_body())


def load_query(schema_class):
    return validate_request_data(schema_class, request.args.to_dict())
