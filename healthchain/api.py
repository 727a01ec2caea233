"""
HTTP API over the HealthPolicy contract access layer.

Every successful reply has the shape
``{"status": "success", "data": ..., "message": ...}``; failures carry
``{"status": "error", "error": ...}`` as the detail, with the underlying
message passed through verbatim.
"""

import logging
import time
from typing import List, Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from healthchain.context import ChainContext, build_context
from healthchain.exceptions import DecodeMismatch, DocumentStoreError, NotFound, RpcError, UserRejected
from healthchain.models import (
    ApprovalUpdate,
    CreatePolicyRequest,
    DocumentUpload,
    HospitalServicePrice,
    IcdCodeCreate,
    PreExistingConditionCreate,
    ProcessServiceRequest,
    RecordKind,
    ServiceRequestCreate,
    SutCodeCreate,
    TokenApproval,
)
from healthchain.service import calculate_premium

logger = logging.getLogger(__name__)

ERROR_STATUS = (
    (NotFound, 404),
    (UserRejected, 409),
    (ValueError, 400),
    (RpcError, 502),
    (DecodeMismatch, 502),
    (DocumentStoreError, 502),
)


# Standard API response helpers
def success_response(data=None, message=None):
    """
    Create a standardized success response.

    Args:
        data: Optional data to include in the response
        message: Optional message to include in the response

    Returns:
        dict: A standardized success response
    """
    response = {"status": "success"}

    if data is not None:
        response["data"] = data

    if message is not None:
        response["message"] = message

    return response


def error_response(message, status_code=400):
    """
    Create a standardized error response and raise an HTTPException.

    Raises:
        HTTPException: With the specified status code and error details
    """
    raise HTTPException(
        status_code=status_code,
        detail={"status": "error", "error": message}
    )


def _dump(models) -> List[dict]:
    return [model.model_dump(mode="json") for model in models]


def get_context(request: Request) -> ChainContext:
    return request.app.state.context


def _token(ctx: ChainContext):
    if ctx.token is None:
        error_response("No payment token configured", status_code=503)
    return ctx.token


def create_app(context: Optional[ChainContext] = None) -> FastAPI:
    """Create the API; builds the context from configuration when none is given."""
    app = FastAPI(title="Health Policy Chain API")
    app.state.context = context if context is not None else build_context()

    # Enable CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    def make_handler(status_code):
        async def handler(request: Request, exc: Exception):
            logger.error(f"{request.method} {request.url.path} failed: {exc}")
            return JSONResponse(
                status_code=status_code,
                content={"detail": {"status": "error", "error": str(exc)}},
            )
        return handler

    for error_type, status_code in ERROR_STATUS:
        app.add_exception_handler(error_type, make_handler(status_code))

    @app.get("/health")
    @app.get("/api/health")
    def health_check():
        """Health check endpoint for Docker healthcheck"""
        return success_response(
            data={"timestamp": int(time.time())},
            message="Service is healthy"
        )

    @app.get("/api/network")
    def network_info(ctx: ChainContext = Depends(get_context)):
        info = ctx.service.get_network_info()
        return success_response(data=info.model_dump(), message="Network info retrieved successfully")

    @app.get("/api/premium")
    def premium(risk_score: int = Query(...)):
        """Premium for a risk score, calculated locally"""
        return success_response(
            data={"premium": calculate_premium(risk_score), "risk_score": risk_score},
            message="Premium calculated successfully"
        )

    # Policies

    @app.get("/api/policies/owner/{owner}")
    def list_policies(owner: str, details: bool = True, ctx: ChainContext = Depends(get_context)):
        policy_ids = sorted(ctx.resolver.resolve_ids(owner, RecordKind.POLICY))
        data = {"ids": policy_ids}
        if details:
            data["policies"] = _dump(ctx.fetcher.fetch_all(RecordKind.POLICY, policy_ids))
        return success_response(data=data, message="User policies retrieved successfully")

    @app.get("/api/policies/{policy_id}")
    def get_policy(policy_id: int, ctx: ChainContext = Depends(get_context)):
        policy = ctx.fetcher.fetch(RecordKind.POLICY, policy_id)
        return success_response(data=policy.model_dump(mode="json"), message="Policy retrieved successfully")

    @app.post("/api/policies")
    def create_policy(body: CreatePolicyRequest, ctx: ChainContext = Depends(get_context)):
        result = ctx.service.create_policy(
            body.policy_holder, body.risk_score, body.duration_days, body.ipfs_hash
        )
        return success_response(data=result.model_dump(), message="Policy created successfully")

    @app.post("/api/policies/{policy_id}/pause")
    def pause_policy(policy_id: int, ctx: ChainContext = Depends(get_context)):
        result = ctx.service.pause_policy(policy_id)
        return success_response(data=result.model_dump(), message="Policy paused successfully")

    @app.post("/api/policies/{policy_id}/unpause")
    def unpause_policy(policy_id: int, ctx: ChainContext = Depends(get_context)):
        result = ctx.service.unpause_policy(policy_id)
        return success_response(data=result.model_dump(), message="Policy unpaused successfully")

    # Rights

    @app.get("/api/rights/{owner}")
    def get_rights(owner: str, ctx: ChainContext = Depends(get_context)):
        return success_response(
            data=_dump(ctx.rights.get_rights(owner)),
            message="Patient rights retrieved successfully"
        )

    @app.get("/api/rights/{owner}/detailed")
    def get_rights_detailed(owner: str, ctx: ChainContext = Depends(get_context)):
        return success_response(
            data=_dump(ctx.rights.get_rights_detailed(owner)),
            message="Detailed patient rights retrieved successfully"
        )

    # Code tables

    @app.post("/api/codes/icd")
    def add_icd_code(body: IcdCodeCreate, ctx: ChainContext = Depends(get_context)):
        result = ctx.registry.add_icd_code(
            body.code, body.description, body.requires_sut, body.is_pre_existing, body.coverage_percentage
        )
        return success_response(data=result.model_dump(), message="ICD code added successfully")

    @app.get("/api/codes/icd/{code}")
    def get_icd_code(code: str, ctx: ChainContext = Depends(get_context)):
        return success_response(
            data=ctx.registry.get_icd_code(code).model_dump(),
            message="ICD code retrieved successfully"
        )

    @app.post("/api/codes/sut")
    def add_sut_code(body: SutCodeCreate, ctx: ChainContext = Depends(get_context)):
        result = ctx.registry.add_sut_code(body.code, body.description, body.service_type, body.base_price)
        return success_response(data=result.model_dump(), message="SUT code added successfully")

    @app.get("/api/codes/sut/{code}")
    def get_sut_code(code: str, ctx: ChainContext = Depends(get_context)):
        return success_response(
            data=ctx.registry.get_sut_code(code).model_dump(mode="json"),
            message="SUT code retrieved successfully"
        )

    # Providers

    @app.post("/api/hospitals/{hospital}/approval")
    def set_hospital_approval(hospital: str, body: ApprovalUpdate, ctx: ChainContext = Depends(get_context)):
        result = ctx.registry.set_hospital_approval(hospital, body.is_approved)
        return success_response(data=result.model_dump(), message="Hospital approval updated successfully")

    @app.post("/api/doctors/{doctor}/approval")
    def set_doctor_approval(doctor: str, body: ApprovalUpdate, ctx: ChainContext = Depends(get_context)):
        result = ctx.registry.set_doctor_approval(doctor, body.is_approved)
        return success_response(data=result.model_dump(), message="Doctor approval updated successfully")

    @app.post("/api/hospital-services")
    def add_hospital_service(body: HospitalServicePrice, ctx: ChainContext = Depends(get_context)):
        result = ctx.registry.add_hospital_service(body.sut_code, body.price)
        return success_response(data=result.model_dump(), message="Hospital service added successfully")

    @app.put("/api/hospital-services")
    def update_hospital_service_price(body: HospitalServicePrice, ctx: ChainContext = Depends(get_context)):
        result = ctx.registry.update_hospital_service_price(body.sut_code, body.price)
        return success_response(data=result.model_dump(), message="Hospital service price updated successfully")

    @app.get("/api/hospital-services/{hospital}/{sut_code}")
    def get_hospital_service(hospital: str, sut_code: str, ctx: ChainContext = Depends(get_context)):
        return success_response(
            data=ctx.registry.get_hospital_service(hospital, sut_code).model_dump(mode="json"),
            message="Hospital service retrieved successfully"
        )

    @app.post("/api/patients/{patient}/conditions")
    def add_pre_existing_condition(patient: str, body: PreExistingConditionCreate,
                                   ctx: ChainContext = Depends(get_context)):
        result = ctx.registry.add_pre_existing_condition(patient, body.icd_code, body.diagnosis_date)
        return success_response(data=result.model_dump(), message="Pre-existing condition added successfully")

    # Payment token

    @app.get("/api/token")
    def payment_token(ctx: ChainContext = Depends(get_context)):
        token = _token(ctx)
        return success_response(
            data={"address": token.address},
            message="Payment token address retrieved successfully"
        )

    @app.get("/api/token/balance/{user}")
    def token_balance(user: str, ctx: ChainContext = Depends(get_context)):
        balance = _token(ctx).balance(user)
        return success_response(data=balance.model_dump(), message="Token balance retrieved successfully")

    @app.post("/api/token/approve")
    def approve_token(body: TokenApproval, ctx: ChainContext = Depends(get_context)):
        result = _token(ctx).approve(body.amount)
        return success_response(data=result.model_dump(), message="Token approval completed successfully")

    # Service requests

    @app.get("/api/service-requests/owner/{owner}")
    def list_service_requests(owner: str, ctx: ChainContext = Depends(get_context)):
        requests = ctx.resolver.resolve_records(owner, RecordKind.SERVICE_REQUEST)
        return success_response(data=_dump(requests), message="Patient service requests retrieved successfully")

    @app.get("/api/service-requests/{request_id}")
    def get_service_request(request_id: int, ctx: ChainContext = Depends(get_context)):
        service_request = ctx.fetcher.fetch(RecordKind.SERVICE_REQUEST, request_id)
        return success_response(
            data=service_request.model_dump(mode="json"),
            message="Service request retrieved successfully"
        )

    @app.post("/api/service-requests")
    def request_service(body: ServiceRequestCreate, ctx: ChainContext = Depends(get_context)):
        result = ctx.service.request_service(
            body.policy_id, body.patient, body.doctor, body.icd_code, body.sut_code, body.amount
        )
        return success_response(data=result.model_dump(), message="Service requested successfully")

    @app.post("/api/service-requests/{request_id}/process")
    def process_service_request(request_id: int, body: ProcessServiceRequest,
                                ctx: ChainContext = Depends(get_context)):
        ipfs_hash = body.ipfs_hash
        if body.document_base64:
            if ctx.documents is None:
                error_response("No document store configured", status_code=503)
            ipfs_hash = ctx.documents.upload_base64(body.document_base64)
        if not ipfs_hash:
            error_response("Either ipfs_hash or document_base64 is required")

        result = ctx.service.process_service_request(request_id, ipfs_hash)
        data = result.model_dump()
        data["ipfs_hash"] = ipfs_hash
        return success_response(data=data, message="Service request processed successfully")

    @app.post("/api/service-requests/{request_id}/pay")
    def pay_for_service(request_id: int, ctx: ChainContext = Depends(get_context)):
        result = ctx.service.pay_for_service(request_id)
        return success_response(data=result.model_dump(), message="Payment for service completed successfully")

    # Documents

    @app.post("/api/documents")
    def upload_document(body: DocumentUpload, ctx: ChainContext = Depends(get_context)):
        if ctx.documents is None:
            error_response("No document store configured", status_code=503)
        cid = ctx.documents.upload_base64(body.base64)
        return success_response(data={"cid": cid, "mime_type": body.mime_type}, message="Document uploaded successfully")

    return app
