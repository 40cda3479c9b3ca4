"""
Structural validation of share requests.

Responsibilities:
- Check signature field metadata and share options before a request is
  created (size limit, required keys, field types)
- Check the field / recipient binding of multi-recipient requests

All checks are pure: inputs are never modified and no I/O happens. Errors
are returned as a list of human readable strings, an empty list meaning
the input is valid.
"""

import json

from rest_framework import serializers

MAX_SIGN_OPTIONS_SIZE = 8 * 1024


class SignatureFieldSerializer(serializers.Serializer):
    """One signature field of the share metadata. Unknown keys are ignored."""
    id = serializers.CharField(max_length=255)
    recipient_idx = serializers.IntegerField(required=False, allow_null=True)
    page = serializers.IntegerField(required=False, min_value=1)
    x = serializers.FloatField(required=False)
    y = serializers.FloatField(required=False)
    width = serializers.FloatField(required=False, min_value=0)
    height = serializers.FloatField(required=False, min_value=0)

    def to_internal_value(self, data):
        # JSON booleans are accepted by IntegerField
        if isinstance(data, dict) and isinstance(data.get('recipient_idx'), bool):
            raise serializers.ValidationError({'recipient_idx': ['must be an integer']})
        # Field ids name the form parts of a signature submission
        if isinstance(data, dict) and 'id' in data and not isinstance(data['id'], str):
            raise serializers.ValidationError({'id': ['must be a string']})
        return super().to_internal_value(data)


class ShareMetadataSerializer(serializers.Serializer):
    signature_fields = SignatureFieldSerializer(many=True, required=False)

    def validate_signature_fields(self, value):
        ids = [field['id'] for field in value]
        if len(ids) != len(set(ids)):
            raise serializers.ValidationError('field ids must be unique')
        return value


def _flatten_errors(errors, prefix=''):
    """Flatten nested serializer errors into 'path: message' strings."""
    result = []
    if isinstance(errors, dict):
        for key, value in errors.items():
            path = f"{prefix}.{key}" if prefix else str(key)
            if key == 'non_field_errors':
                path = prefix
            result.extend(_flatten_errors(value, path))
    elif isinstance(errors, list):
        for idx, value in enumerate(errors):
            if isinstance(value, (dict, list)):
                result.extend(_flatten_errors(value, f"{prefix}[{idx}]"))
            elif value:
                result.append(f"{prefix}: {value}" if prefix else str(value))
    elif errors:
        result.append(f"{prefix}: {errors}" if prefix else str(errors))
    return result


def _exceeds_size(data):
    try:
        encoded = json.dumps(data)
    except (TypeError, ValueError):
        return True
    return len(encoded.encode('utf-8')) > MAX_SIGN_OPTIONS_SIZE


class RequestValidator:
    """Validator for share metadata and options."""

    @staticmethod
    def validate_share_metadata(metadata):
        """
        Validate the signature field metadata of a share request.

        Args:
            metadata: dict (may be empty)

        Returns:
            list: error descriptions, empty if valid
        """
        if not isinstance(metadata, dict):
            return ['metadata must be an object']

        if _exceeds_size(metadata):
            return [f'metadata exceeds {MAX_SIGN_OPTIONS_SIZE} bytes']

        fields = metadata.get('signature_fields')
        if fields is not None and not isinstance(fields, list):
            return ['signature_fields must be a list']

        serializer = ShareMetadataSerializer(data=metadata)
        if serializer.is_valid():
            return []
        return _flatten_errors(serializer.errors)

    @staticmethod
    def validate_share_options(options):
        """
        Validate the options of a share request.

        Args:
            options: dict or None (no options)

        Returns:
            list: error descriptions, empty if valid
        """
        if options is None:
            return []

        if not isinstance(options, dict):
            return ['options must be an object']

        if _exceeds_size(options):
            return [f'options exceed {MAX_SIGN_OPTIONS_SIZE} bytes']

        return []

    @staticmethod
    def validate_field_assignment(fields, recipient_count):
        """
        Check that fields and recipients of a multi-recipient request are
        bound to each other: every field names a recipient in range and
        every recipient has at least one field.

        Args:
            fields: list of signature field dicts
            recipient_count: int

        Returns:
            str or None: the first violation found
        """
        if recipient_count <= 1:
            return None

        unassigned = set(range(recipient_count))
        for field in fields:
            idx = field.get('recipient_idx')
            if idx is None:
                return 'field has no recipient_idx'
            if isinstance(idx, bool) or not isinstance(idx, int) or idx < 0 or idx >= recipient_count:
                return 'recipient_idx is out of bounds'
            unassigned.discard(idx)

        if unassigned:
            return 'recipient has no field assigned'
        return None


# Singleton instance
_validator = None


def get_validator() -> RequestValidator:
    """Get singleton instance of the request validator."""
    global _validator
    if _validator is None:
        _validator = RequestValidator()
    return _validator
