from django.dispatch import Signal

# Sent once per Pending -> Signed transition of a recipient.
# Arguments: request_id, request, recipient_type, recipient_value, signed,
# user (acting user or None), is_last.
recipient_signed = Signal()
