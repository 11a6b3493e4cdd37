import asyncio
import logging
from functools import partial

from fastapi import APIRouter, HTTPException, status, Depends, Request, Body

from core.exceptions import (
    DealNotFoundError,
    InvalidRequestError,
    SummaryGenerationError,
)
from core.signal_engine import DealSignalEngine
from models.schemas import AnalyzeRequest, SummaryRequest, SummaryResponse
from api.middleware import get_request_id

logger = logging.getLogger(__name__)

# Create router
router = APIRouter()

# =================== DEPENDENCY FUNCTIONS ===================

def get_services(request: Request):
    """Get services from application state"""
    return request.app.state.services

def get_signal_engine(services: dict = Depends(get_services)) -> DealSignalEngine:
    """Get deal signal engine service"""
    engine = services.get('signal_engine')
    if not engine:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Deal signal engine not available"
        )
    return engine

async def run_blocking(func, *args, **kwargs):
    """Run a blocking engine call in the default executor"""
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, partial(func, *args, **kwargs))

# =================== API ENDPOINTS ===================

@router.post("/deals/ai-summary", response_model=SummaryResponse, tags=["Deals"])
async def generate_ai_summary(
    request: Request,
    engine: DealSignalEngine = Depends(get_signal_engine),
    summary_request: SummaryRequest = Body(
        ...,
        examples=[{"tenantId": "tenant-1", "dealId": "deal-42"}]
    )
):
    """
    Generate and persist the AI summary for a deal

    Reads the deal with its action logs, emails and stage history, runs the
    signal analysis and writes the result back onto the deal as `aiSummary`.
    """

    request_id = get_request_id(request)
    tenant_id, deal_id = summary_request.tenant_id, summary_request.deal_id

    try:
        logger.info(f"[{request_id}] Generating AI summary for deal {deal_id} in tenant {tenant_id}")

        ai_summary = await run_blocking(engine.generate_summary, tenant_id, deal_id)

        logger.info(f"[{request_id}] AI summary completed for deal {deal_id}")
        return SummaryResponse(ai_summary=ai_summary)

    except InvalidRequestError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    except DealNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except SummaryGenerationError as e:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"[{request_id}] Error generating AI summary: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=SummaryGenerationError.MESSAGE
        )

@router.get("/tenants/{tenant_id}/deals/{deal_id}/ai-summary", response_model=SummaryResponse, tags=["Deals"])
async def get_ai_summary(
    tenant_id: str,
    deal_id: str,
    request: Request,
    engine: DealSignalEngine = Depends(get_signal_engine)
):
    """Get the most recently persisted AI summary of a deal"""

    request_id = get_request_id(request)

    try:
        logger.info(f"[{request_id}] Reading AI summary for deal {deal_id} in tenant {tenant_id}")

        ai_summary = await run_blocking(engine.get_summary, tenant_id, deal_id)
        if ai_summary is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="AI summary not available for this deal"
            )

        return SummaryResponse(ai_summary=ai_summary)

    except DealNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"[{request_id}] Error reading AI summary: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to read AI summary"
        )

@router.post("/analyze", response_model=SummaryResponse, tags=["Analysis"])
async def analyze_deal_records(
    request: Request,
    engine: DealSignalEngine = Depends(get_signal_engine),
    analyze_request: AnalyzeRequest = Body(
        ...,
        examples=[{
            "deal": {
                "id": "deal-42",
                "name": "Acme Renewal",
                "stage": "proposal",
                "stageData": {"qualification": {"expectedCloseDate": "2024-06-30", "timeline": "Q2"}}
            },
            "actionLogs": [
                {"id": "log-1", "action": "proposal_sent", "timestamp": "2024-05-01T09:00:00Z"}
            ],
            "emails": [
                {"id": "em-1", "direction": "outbound", "subject": "Re: Pricing", "timestamp": "2024-05-01T10:00:00Z"},
                {"id": "em-2", "direction": "inbound", "subject": "Re: Pricing", "timestamp": "2024-05-01T14:00:00Z"}
            ],
            "stageHistory": [
                {"stage": "proposal", "timestamp": "2024-04-28T08:00:00Z"}
            ],
            "now": "2024-05-02T09:00:00Z"
        }]
    )
):
    """
    Analyze caller-supplied deal records without reading or writing the store

    Returns the same `aiSummary` structure the persisted flow produces.
    """

    request_id = get_request_id(request)

    try:
        logger.info(f"[{request_id}] Analyzing supplied records for deal {analyze_request.deal.id}")

        ai_summary = await run_blocking(
            engine.analyze_records,
            analyze_request.deal,
            analyze_request.action_logs,
            analyze_request.emails,
            analyze_request.stage_history,
            now=analyze_request.now
        )
        return SummaryResponse(ai_summary=ai_summary)

    except Exception as e:
        logger.error(f"[{request_id}] Error analyzing deal records: {e}", exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=SummaryGenerationError.MESSAGE
        )

@router.get("/system/stats", tags=["System"])
async def get_system_stats(
    request: Request,
    engine: DealSignalEngine = Depends(get_signal_engine)
):
    """Get deal store, cache and engine configuration statistics"""

    try:
        request_id = get_request_id(request)
        logger.info(f"[{request_id}] Getting system statistics")

        return engine.get_engine_stats()

    except Exception as e:
        logger.error(f"Error getting system stats: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to get system stats"
        )
