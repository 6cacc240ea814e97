import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, Callable, Optional

from fastapi import Depends, FastAPI, HTTPException, Query
from fastapi.responses import JSONResponse, Response
from sqlalchemy.orm import Session

from config import get_settings, local_now
from database import get_db
from fx_rates import FxRateService
from models import TransactionType
from scheduler import SchedulerManager
from schemas import (
    AssetIn,
    FinancialGoalIn,
    FinancialGoalUpdate,
    GoalMilestoneIn,
    GoalMilestoneUpdate,
    InvestmentIn,
    MarketPriceIn,
    ProfileIn,
    TransactionIn,
)
from services import (
    AssetService,
    GoalService,
    InvestmentService,
    MarketPriceService,
    NotFoundError,
    ProfileService,
    TransactionService,
    VoiceAgentService,
    asset_to_record,
    goal_to_record,
    investment_to_record,
    milestone_to_record,
    period_overview,
    period_transactions,
    profile_to_record,
    transaction_to_record,
)

logger = logging.getLogger(__name__)

app = FastAPI(title="Net Worth Dashboard")


def get_now() -> datetime:
    return local_now()


def get_usd_to_cad() -> Decimal:
    return FxRateService().usd_to_cad()


def period_param(period: Optional[str] = Query(default=None)) -> str:
    return period or get_settings().default_period


scheduler_manager = SchedulerManager()


@app.on_event("startup")
def startup_event():
    scheduler_manager.start()


@app.on_event("shutdown")
def shutdown_event():
    scheduler_manager.stop()


def voice_agent_service(
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
    usd_to_cad: Decimal = Depends(get_usd_to_cad),
) -> VoiceAgentService:
    return VoiceAgentService(db, usd_to_cad=usd_to_cad, now=now)


def _voice_response(name: str, build: Callable[[], dict[str, Any]]):
    try:
        return build()
    except Exception as exc:
        logger.exception(f"voice_agent_error: endpoint={name}")
        return JSONResponse(status_code=500, content={"error": str(exc) or "Unknown error"})


@app.get("/api/voice-agent/spending")
def voice_spending(
    period: str = Depends(period_param),
    service: VoiceAgentService = Depends(voice_agent_service),
):
    return _voice_response("spending", lambda: service.spending(period))


@app.get("/api/voice-agent/income")
def voice_income(
    period: str = Depends(period_param),
    service: VoiceAgentService = Depends(voice_agent_service),
):
    return _voice_response("income", lambda: service.income(period))


@app.get("/api/voice-agent/compare")
def voice_compare(service: VoiceAgentService = Depends(voice_agent_service)):
    return _voice_response("compare", service.compare)


@app.get("/api/voice-agent/overview")
def voice_overview(service: VoiceAgentService = Depends(voice_agent_service)):
    return _voice_response("overview", service.overview)


@app.get("/api/voice-agent/financial-summary")
def voice_financial_summary(service: VoiceAgentService = Depends(voice_agent_service)):
    return _voice_response("financial-summary", service.financial_summary)


@app.get("/api/voice-agent/net-worth")
def voice_net_worth(service: VoiceAgentService = Depends(voice_agent_service)):
    return _voice_response("net-worth", service.net_worth)


@app.get("/api/voice-agent/transactions")
def voice_transactions(
    limit: int = Query(default=10, ge=1, le=100),
    type: Optional[TransactionType] = Query(default=None),
    category: Optional[str] = Query(default=None),
    service: VoiceAgentService = Depends(voice_agent_service),
):
    return _voice_response(
        "transactions",
        lambda: service.transactions(
            limit=limit,
            txn_type=type.value if type else None,
            category=category,
        ),
    )


@app.get("/api/voice-agent/recurring")
def voice_recurring(service: VoiceAgentService = Depends(voice_agent_service)):
    return _voice_response("recurring", service.recurring)


@app.get("/api/voice-agent/goals")
def voice_goals(service: VoiceAgentService = Depends(voice_agent_service)):
    return _voice_response("goals", service.goals)


@app.get("/api/voice-agent/investments")
def voice_investments(service: VoiceAgentService = Depends(voice_agent_service)):
    return _voice_response("investments", service.investments)


@app.get("/api/voice-agent/assets")
def voice_assets(service: VoiceAgentService = Depends(voice_agent_service)):
    return _voice_response("assets", service.assets)


@app.get("/api/voice-agent/liabilities")
def voice_liabilities(service: VoiceAgentService = Depends(voice_agent_service)):
    return _voice_response("liabilities", service.liabilities)


@app.get("/api/voice-agent/profile")
def voice_profile(service: VoiceAgentService = Depends(voice_agent_service)):
    return _voice_response("profile", service.profile)


@app.get("/api/periods")
def api_periods(now: datetime = Depends(get_now)):
    return {"periods": period_overview(now)}


@app.get("/api/transactions")
def api_transactions(
    period: str = Depends(period_param),
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
):
    return period_transactions(db, period, now)


def _http_error(exc: ValueError) -> HTTPException:
    status = 404 if isinstance(exc, NotFoundError) else 400
    return HTTPException(status_code=status, detail=str(exc))


def _transaction_json(txn) -> dict[str, Any]:
    record = transaction_to_record(txn)
    record["amount"] = float(record["amount"])
    return record


@app.post("/api/transactions", status_code=201)
def api_create_transaction(payload: TransactionIn, db: Session = Depends(get_db)):
    try:
        txn = TransactionService(db).create(payload)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return _transaction_json(txn)


@app.put("/api/transactions/{transaction_id}")
def api_update_transaction(
    transaction_id: str, payload: TransactionIn, db: Session = Depends(get_db)
):
    # projected instance ids edit the stored series they came from
    try:
        txn = TransactionService(db).update(transaction_id, payload)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return _transaction_json(txn)


@app.delete("/api/transactions/{transaction_id}", status_code=204)
def api_delete_transaction(transaction_id: str, db: Session = Depends(get_db)):
    try:
        TransactionService(db).delete(transaction_id)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return Response(status_code=204)


@app.get("/api/investments")
def api_investments(db: Session = Depends(get_db)):
    return {
        "items": [investment_to_record(i) for i in InvestmentService(db).list_all()]
    }


@app.post("/api/investments", status_code=201)
def api_create_investment(payload: InvestmentIn, db: Session = Depends(get_db)):
    return investment_to_record(InvestmentService(db).create(payload))


@app.put("/api/investments/{investment_id}")
def api_update_investment(
    investment_id: int, payload: InvestmentIn, db: Session = Depends(get_db)
):
    try:
        investment = InvestmentService(db).update(investment_id, payload)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return investment_to_record(investment)


@app.delete("/api/investments/{investment_id}", status_code=204)
def api_delete_investment(investment_id: int, db: Session = Depends(get_db)):
    try:
        InvestmentService(db).delete(investment_id)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return Response(status_code=204)


@app.put("/api/market-prices/{symbol}")
def api_set_market_price(
    symbol: str, payload: MarketPriceIn, db: Session = Depends(get_db)
):
    row = MarketPriceService(db).upsert(symbol, payload.price)
    return {"symbol": row.symbol, "price": float(row.price)}


@app.get("/api/assets")
def api_assets(db: Session = Depends(get_db)):
    return {"items": [asset_to_record(a) for a in AssetService(db).list_all()]}


@app.post("/api/assets", status_code=201)
def api_create_asset(
    payload: AssetIn,
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
):
    asset = AssetService(db).create(payload, today=now.date())
    return asset_to_record(asset)


@app.delete("/api/assets/{asset_id}", status_code=204)
def api_delete_asset(asset_id: int, db: Session = Depends(get_db)):
    try:
        AssetService(db).delete(asset_id)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return Response(status_code=204)


@app.get("/api/goals")
def api_goals(db: Session = Depends(get_db)):
    return {"items": [goal_to_record(g) for g in GoalService(db).list_all()]}


@app.post("/api/goals", status_code=201)
def api_create_goal(payload: FinancialGoalIn, db: Session = Depends(get_db)):
    return goal_to_record(GoalService(db).create(payload))


@app.patch("/api/goals/{goal_id}")
def api_update_goal(
    goal_id: int, payload: FinancialGoalUpdate, db: Session = Depends(get_db)
):
    try:
        goal = GoalService(db).update(goal_id, payload)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return goal_to_record(goal)


@app.delete("/api/goals/{goal_id}", status_code=204)
def api_delete_goal(goal_id: int, db: Session = Depends(get_db)):
    try:
        GoalService(db).delete(goal_id)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return Response(status_code=204)


@app.post("/api/goals/{goal_id}/milestones", status_code=201)
def api_create_milestone(
    goal_id: int, payload: GoalMilestoneIn, db: Session = Depends(get_db)
):
    try:
        milestone = GoalService(db).add_milestone(goal_id, payload)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return milestone_to_record(milestone)


@app.patch("/api/milestones/{milestone_id}")
def api_update_milestone(
    milestone_id: int, payload: GoalMilestoneUpdate, db: Session = Depends(get_db)
):
    try:
        milestone = GoalService(db).update_milestone(milestone_id, payload)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return milestone_to_record(milestone)


@app.delete("/api/milestones/{milestone_id}", status_code=204)
def api_delete_milestone(milestone_id: int, db: Session = Depends(get_db)):
    try:
        GoalService(db).delete_milestone(milestone_id)
    except ValueError as exc:
        raise _http_error(exc) from exc
    return Response(status_code=204)


@app.get("/api/profile")
def api_profile(db: Session = Depends(get_db)):
    return profile_to_record(ProfileService(db).get())


@app.put("/api/profile")
def api_update_profile(payload: ProfileIn, db: Session = Depends(get_db)):
    return profile_to_record(ProfileService(db).upsert(payload))
