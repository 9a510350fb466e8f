import logging

from fastapi import Depends, FastAPI, HTTPException, Response
from fastapi.responses import PlainTextResponse
from sqlalchemy.orm import Session

from breakdown import row_cells
from database import SessionLocal, init_db
from notifications import watch_session_changes
from scheduler import SchedulerManager
from schemas import (
    AccountFlagsIn,
    AccountIn,
    BarOut,
    BarsOut,
    BreakdownRowOut,
    BudgetChoiceIn,
    BudgetIn,
    BudgetItemIn,
    CategoryOut,
    CurrencyIn,
    PeriodIn,
    SelectedCategoriesIn,
    SettingsUpdate,
    TransactionIn,
)
from services import (
    AccountService,
    BarsSnapshot,
    BarView,
    BudgetBarsService,
    BudgetSelectionRequired,
    BudgetService,
    CurrencyService,
    NoMonthlyBudgetsError,
    TransactionService,
)

logger = logging.getLogger(__name__)

app = FastAPI(title="Budget Bars")


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


scheduler_manager = SchedulerManager()
_stop_watching = None


@app.on_event("startup")
def startup_event():
    global _stop_watching
    init_db()
    _stop_watching = watch_session_changes(SessionLocal, scheduler_manager.notify)
    scheduler_manager.start()


@app.on_event("shutdown")
def shutdown_event():
    if _stop_watching is not None:
        _stop_watching()
    scheduler_manager.stop()


def _current_snapshot(db: Session) -> BarsSnapshot:
    snapshot = scheduler_manager.snapshot
    if snapshot is not None:
        return snapshot
    try:
        snapshot = BudgetBarsService(db).build()
    except BudgetSelectionRequired as exc:
        raise HTTPException(
            status_code=409, detail={"message": str(exc), "choices": exc.choices}
        ) from exc
    except NoMonthlyBudgetsError as exc:
        raise HTTPException(status_code=409, detail={"message": str(exc)}) from exc
    except ValueError as exc:
        # ledger not ready for aggregation, e.g. no base currency yet
        raise HTTPException(status_code=409, detail={"message": str(exc)}) from exc
    scheduler_manager.publish(snapshot)
    return snapshot


def _bar_out(bar: BarView, snapshot: BarsSnapshot) -> BarOut:
    use_own = snapshot.settings.use_category_currency
    rows = []
    for row in bar.rows:
        spent, percent, remaining, budget = row_cells(row, snapshot.converter, use_own)
        rows.append(
            BreakdownRowOut(
                category_id=row.node_id,
                label=row.label,
                indent=row.indent,
                show_amounts=row.show_amounts,
                spent=spent,
                percent=percent,
                remaining=remaining,
                budget=budget,
            )
        )
    return BarOut(
        category_id=bar.category_id,
        label=bar.label,
        spent_cents=bar.spent_cents,
        budget_cents=bar.budget_cents,
        progress=bar.progress,
        status=bar.status.value,
        color=bar.color,
        percent=bar.percent,
        spent=bar.spent,
        remaining=bar.remaining,
        budget=bar.budget,
        rows=rows,
    )


@app.get("/health")
def health():
    return {"status": "ok"}


@app.get("/api/bars", response_model=BarsOut)
def list_bars(db: Session = Depends(get_db)):
    snapshot = _current_snapshot(db)
    selection = snapshot.selection
    return BarsOut(
        budget_name=snapshot.budget_name,
        period=snapshot.settings.period.label,
        year=selection.year,
        start_month=selection.start_month,
        month_count=selection.month_count,
        notice=snapshot.notice,
        bars=[_bar_out(bar, snapshot) for bar in snapshot.bars],
    )


@app.get("/api/bars/text", response_class=PlainTextResponse)
def bars_text(db: Session = Depends(get_db)):
    return _current_snapshot(db).text


@app.get("/api/settings")
def get_widget_settings(db: Session = Depends(get_db)):
    return BudgetBarsService(db).settings_store.load().as_dict()


@app.put("/api/settings")
def update_widget_settings(data: SettingsUpdate, db: Session = Depends(get_db)):
    service = BudgetBarsService(db)
    changes = data.changes()
    try:
        if "budget_name" in changes:
            service.ensure_monthly_budget(changes["budget_name"])
        updated = service.settings_store.update(**changes)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    scheduler_manager.invalidate()
    return updated.as_dict()


@app.put("/api/period")
def update_period(data: PeriodIn, db: Session = Depends(get_db)):
    updated = BudgetBarsService(db).settings_store.update(period=data.period)
    scheduler_manager.invalidate()
    return {"period": int(updated.period), "label": updated.period.label}


@app.get("/api/budgets")
def list_budgets(db: Session = Depends(get_db)):
    service = BudgetBarsService(db)
    return {
        "selected": service.settings_store.current.budget_name,
        "budgets": [b.name for b in BudgetService(db).list_monthly()],
    }


@app.put("/api/budgets/selected")
def choose_budget(data: BudgetChoiceIn, db: Session = Depends(get_db)):
    try:
        updated = BudgetBarsService(db).select_budget(data.budget_name)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    scheduler_manager.invalidate()
    return updated.as_dict()


@app.get("/api/categories", response_model=list[CategoryOut])
def list_categories(db: Session = Depends(get_db)):
    snapshot = _current_snapshot(db)
    selected = {bar.category_id for bar in snapshot.bars}
    return [
        CategoryOut(
            category_id=node.id,
            full_name=node.full_name,
            indent=node.indent_level,
            selected=node.id in selected,
            synthetic=node.is_synthetic,
        )
        for node in snapshot.tree
    ]


@app.get("/api/categories/selected")
def get_selected_categories(db: Session = Depends(get_db)):
    snapshot = _current_snapshot(db)
    return {"category_ids": [bar.category_id for bar in snapshot.bars]}


@app.put("/api/categories/selected")
def set_selected_categories(data: SelectedCategoriesIn, db: Session = Depends(get_db)):
    snapshot = _current_snapshot(db)
    try:
        saved = BudgetBarsService(db).save_selected(data.category_ids, snapshot.tree)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    scheduler_manager.invalidate()
    return {"category_ids": saved}


def _lookup_error(exc: ValueError) -> HTTPException:
    status_code = 404 if "not found" in str(exc).lower() else 400
    return HTTPException(status_code=status_code, detail=str(exc))


@app.post("/api/currencies", status_code=201)
def upsert_currency(data: CurrencyIn, db: Session = Depends(get_db)):
    try:
        currency = CurrencyService(db).upsert(data)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    scheduler_manager.invalidate()
    return {"id": currency.id, "code": currency.code, "is_base": currency.is_base}


@app.post("/api/accounts", status_code=201)
def create_account(data: AccountIn, db: Session = Depends(get_db)):
    try:
        account = AccountService(db).create(data)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    scheduler_manager.invalidate()
    return {"id": account.id, "uuid": account.uuid, "name": account.name}


@app.post("/api/accounts/{account_id}/flags")
def update_account_flags(
    account_id: int, data: AccountFlagsIn, db: Session = Depends(get_db)
):
    try:
        account = AccountService(db).set_flags(
            account_id,
            is_inactive=data.is_inactive,
            hide_on_home_page=data.hide_on_home_page,
        )
    except ValueError as exc:
        raise _lookup_error(exc) from exc
    scheduler_manager.invalidate()
    return {
        "id": account.id,
        "is_inactive": account.is_inactive,
        "hide_on_home_page": account.hide_on_home_page,
    }


@app.post("/api/accounts/{account_id}/delete", status_code=204)
def delete_account(account_id: int, db: Session = Depends(get_db)):
    try:
        AccountService(db).delete(account_id)
    except ValueError as exc:
        raise _lookup_error(exc) from exc
    scheduler_manager.invalidate()
    return Response(status_code=204)


@app.post("/api/budgets", status_code=201)
def create_budget(data: BudgetIn, db: Session = Depends(get_db)):
    try:
        budget = BudgetService(db).create(data)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    scheduler_manager.invalidate()
    return {"id": budget.id, "name": budget.name}


@app.post("/api/budgets/{budget_id}/delete", status_code=204)
def delete_budget(budget_id: int, db: Session = Depends(get_db)):
    try:
        BudgetService(db).delete(budget_id)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    scheduler_manager.invalidate()
    return Response(status_code=204)


@app.put("/api/budget-items")
def set_budget_item(data: BudgetItemIn, db: Session = Depends(get_db)):
    try:
        item = BudgetService(db).set_item(data)
    except ValueError as exc:
        raise _lookup_error(exc) from exc
    scheduler_manager.invalidate()
    return {"id": item.id, "amount_cents": item.amount_cents}


@app.post("/api/transactions", status_code=201)
def create_transaction(data: TransactionIn, db: Session = Depends(get_db)):
    try:
        txn = TransactionService(db).create(data)
    except ValueError as exc:
        raise _lookup_error(exc) from exc
    scheduler_manager.invalidate()
    return {"id": txn.id}


@app.post("/api/transactions/{transaction_id}/delete", status_code=204)
def delete_transaction(transaction_id: int, db: Session = Depends(get_db)):
    try:
        TransactionService(db).soft_delete(transaction_id)
    except ValueError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    scheduler_manager.invalidate()
    return Response(status_code=204)


@app.post("/api/refresh", status_code=202)
def request_refresh():
    if scheduler_manager.scheduler.running:
        queued = scheduler_manager.refresher.enqueue_refresh("manual")
    else:
        scheduler_manager.invalidate()
        queued = True
    return {"queued": queued}
