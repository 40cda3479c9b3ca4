from .hashing import HashingService, get_hashing_service
from .token_utils import generate_secure_token, calculate_expiry
from .token_service import TokenService, get_token_service
from .api_client import SigningApiClient, get_api_client
from .validator import RequestValidator, get_validator
from .request_store import RequestStore, SignedTransition, get_request_store
from .metadata_store import MetadataStore, get_metadata_store
from .result_service import SignedResultService, get_result_service
from .signing_coordinator import SigningCoordinator, get_signing_coordinator

__all__ = [
    'HashingService',
    'get_hashing_service',
    'generate_secure_token',
    'calculate_expiry',
    'TokenService',
    'get_token_service',
    'SigningApiClient',
    'get_api_client',
    'RequestValidator',
    'get_validator',
    'RequestStore',
    'SignedTransition',
    'get_request_store',
    'MetadataStore',
    'get_metadata_store',
    'SignedResultService',
    'get_result_service',
    'SigningCoordinator',
    'get_signing_coordinator',
]
