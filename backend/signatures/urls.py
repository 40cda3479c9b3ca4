"""
backend/signatures/urls.py

"""

# ----------------------------
# Django imports
# ----------------------------
from django.urls import path

# ----------------------------
# Local view imports
# ----------------------------
from .views import (
    ShareViewSet,
    IncomingViewSet,
    PublicRequestViewSet,
    PublicSignatureViewSet,
    SignedCallbackViewSet,
    FileMetadataViewSet,
)

# App namespace for reverse() lookups
app_name = 'signatures'

# ----------------------------
# Owner routes
# ----------------------------
urlpatterns = [
    path('share/', ShareViewSet.as_view({
        'get': 'list',
        'post': 'create'
    }), name='share-list'),
    # List own requests (?include_signed=1) or share a file for signature.

    path('share/<str:pk>/', ShareViewSet.as_view({
        'get': 'retrieve',
        'delete': 'destroy'
    }), name='share-detail'),
    # Retrieve or delete an own request. Deletion removes the file from the
    # signing service first and only then the local request.

    path('metadata/<str:pk>/', FileMetadataViewSet.as_view({
        'get': 'retrieve'
    }), name='file-metadata'),
    # Signature field layout last stored for a file ({} if none).

    # ----------------------------
    # Recipient routes
    # ----------------------------
    path('incoming/', IncomingViewSet.as_view({
        'get': 'list'
    }), name='incoming-list'),
    # Requests the logged in user has to sign (?include_signed=1 for all).

    path('incoming/<str:pk>/', PublicRequestViewSet.as_view({
        'get': 'retrieve'
    }), name='incoming-detail'),
    # A single request as seen by a recipient. Email recipients pass ?email=.

    path('sign/<str:pk>/', PublicRequestViewSet.as_view({
        'post': 'sign'
    }), name='sign'),
    # Submit the signature of a recipient (multipart: options, images per field).

    path('signature/<str:pk>/', PublicSignatureViewSet.as_view({
        'get': 'retrieve'
    }), name='signature-detail'),
    # A request looked up by the signature id from the request mail.

    # ----------------------------
    # Signing service callbacks
    # ----------------------------
    path('files/<str:file_id>/signed/<str:signature_id>/', SignedCallbackViewSet.as_view({
        'post': 'notify_signed'
    }), name='notify-signed'),
    # Token authenticated (X-Vinegar-Token) confirmation of a signature.
]
