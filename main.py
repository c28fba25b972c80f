import logging
from dataclasses import replace
from datetime import date, datetime
from pathlib import Path
from typing import List, Optional
from urllib.parse import quote, urlencode, urlparse

from fastapi import FastAPI, Request, Depends, File, Form, HTTPException, UploadFile, status
from fastapi.responses import FileResponse, HTMLResponse, RedirectResponse, Response
from fastapi.staticfiles import StaticFiles
from fastapi.templating import Jinja2Templates
from pydantic import ValidationError
from starlette.middleware.sessions import SessionMiddleware
from sqlalchemy.orm import Session

import crud
from settings import settings
from database import get_db
from importer import parse_accounts_csv
from insights import InsightsClient
from installments import InstallmentPreview, ValueMode
from logging_utils import configure_logging
from models import Theme, User, UserRole
from query import STATUS_PAID, AccountQuery, clamp_page, has_active_filters, prune_selection, run_query
from report import build_accounts_report
from schemas import (
    AccountIn,
    AccountOut,
    AccountPageOut,
    InstallmentConfig,
    SessionUser,
    UserCreate,
    UserUpdate,
)
from seed import init_db
from storage import LocalFileStorage
from utils import dashboard_stats, due_state, format_money, totals_by_category, totals_by_month
from utils_auth import verify_password

logger = logging.getLogger(__name__)
BASE_DIR = Path(__file__).resolve().parent

# ---------------------- App & Middleware ----------------------
app = FastAPI(title=settings.APP_NAME)

app.add_middleware(
    SessionMiddleware,
    secret_key=settings.SECRET_KEY,
    same_site="lax",
    https_only=True,
)

app.mount("/static", StaticFiles(directory=BASE_DIR / "static"), name="static")
templates = Jinja2Templates(directory=BASE_DIR / "templates")
templates.env.filters["money"] = format_money

file_storage = LocalFileStorage(settings.UPLOAD_DIR, base_url="/files")
insights_client = InsightsClient()

# ---------------------- Session ----------------------
LOGIN_PATH = "/login"
SESSION_KEY = "user"

def start_session(request: Request, user: User) -> SessionUser:
    session_user = SessionUser.model_validate(user)
    request.session.clear()
    request.session[SESSION_KEY] = session_user.model_dump(mode="json")
    return session_user

def refresh_session(request: Request, user: User) -> SessionUser:
    session_user = SessionUser.model_validate(user)
    request.session[SESSION_KEY] = session_user.model_dump(mode="json")
    return session_user

def end_session(request: Request) -> None:
    request.session.clear()

def require_user(request: Request, db: Session = Depends(get_db)) -> SessionUser:
    data = request.session.get(SESSION_KEY)
    if data:
        user = db.get(User, data.get("id"))
        if user:
            return SessionUser.model_validate(user)
        end_session(request)
    raise HTTPException(
        status_code=303,
        headers={"Location": f"{LOGIN_PATH}?next={quote(request.url.path)}"}
    )

def require_admin(user: SessionUser = Depends(require_user)) -> SessionUser:
    if not user.is_admin:
        raise HTTPException(status_code=403, detail="Administrator access required")
    return user

# ---------------------- Helpers ----------------------
def _is_safe_next(next_url: str) -> bool:
    try:
        u = urlparse(next_url)
        return (not u.netloc) and next_url.startswith("/")
    except Exception:
        return False

def _redirect(url: str, error: Optional[str] = None, message: Optional[str] = None) -> RedirectResponse:
    params = {key: value for key, value in (("error", error), ("message", message)) if value}
    if params:
        url = f"{url}{'&' if '?' in url else '?'}{urlencode(params)}"
    return RedirectResponse(url, status_code=status.HTTP_303_SEE_OTHER)

def _error_text(exc: Exception) -> str:
    if isinstance(exc, ValidationError):
        return "; ".join(
            f"{'.'.join(str(part) for part in err['loc'])}: {err['msg']}" for err in exc.errors()
        )
    return str(exc)

def render(request: Request, name: str, context: dict, user: Optional[SessionUser] = None, status_code: int = 200):
    base = {
        "user": user,
        "app_name": settings.APP_NAME,
        "currency": settings.CURRENCY,
        "error": request.query_params.get("error"),
        "message": request.query_params.get("message"),
    }
    base.update(context)
    return templates.TemplateResponse(request, name, base, status_code=status_code)

def account_form(
    movement_date: str = Form(""),
    due_date: str = Form(""),
    location: str = Form(""),
    supplier: str = Form(""),
    title: str = Form(""),
    company: str = Form(""),
    amount: str = Form("0"),
    accounting_type: str = Form("EXPENSE"),
    category: str = Form("OTHER"),
    status: str = Form("PENDING"),
    note: str = Form(""),
) -> dict:
    return {
        "movement_date": movement_date,
        "due_date": due_date,
        "location": location,
        "supplier": supplier,
        "title": title,
        "company": company,
        "amount": amount,
        "accounting_type": accounting_type,
        "category": category,
        "status": status,
        "note": note,
    }

def installment_form(
    count: int = Form(2),
    interval_days: int = Form(30),
    value_mode: str = Form(ValueMode.TOTAL.value),
) -> dict:
    return {"count": count, "interval_days": interval_days, "value_mode": value_mode}

def _validated_account(db: Session, raw: dict) -> AccountIn:
    data = AccountIn.model_validate(raw)
    issues = crud.get_vocabularies(db).check(data)
    if issues:
        raise crud.VocabularyError("; ".join(issues))
    return data

def _read_uploads(files: Optional[List[UploadFile]]) -> List[tuple]:
    return [
        (upload.filename, upload.content_type or "", upload.file.read(file_storage.max_bytes + 1))
        for upload in files or []
        if upload is not None and upload.filename
    ]

def _discard_files(storage_keys: List[str]) -> None:
    # rows are already committed at this point
    try:
        file_storage.delete_many(storage_keys)
    except OSError:
        logger.exception("Could not delete attachment files %s", storage_keys)

def _account_query(request: Request) -> AccountQuery:
    params = request.query_params
    # first visit hides paid accounts; once the filter form is used the checkbox decides
    hide_paid = params.get("hide_paid") == "1" if "filtered" in params else True
    try:
        page = int(params.get("page", 1))
    except ValueError:
        page = 1
    return AccountQuery.from_params(
        search=params.get("q"),
        date_field=params.get("date_field"),
        start=params.get("start"),
        end=params.get("end"),
        status=params.get("status"),
        hide_paid=hide_paid,
        sort_field=params.get("sort"),
        sort_order=params.get("order"),
        page=page,
    )

def _query_url(path: str, query: AccountQuery, **overrides) -> str:
    params = {
        "q": query.search,
        "date_field": query.date_field,
        "start": query.start.isoformat() if query.start else "",
        "end": query.end.isoformat() if query.end else "",
        "status": query.status,
        "hide_paid": "1" if query.hide_paid else "0",
        "filtered": "1",
        "sort": query.sort_field,
        "order": query.sort_order,
        "page": query.page,
    }
    params.update(overrides)
    return f"{path}?{urlencode(params)}"

# ---------------------- Startup ----------------------
@app.on_event("startup")
def startup():
    configure_logging()
    Path(settings.UPLOAD_DIR).mkdir(parents=True, exist_ok=True)
    init_db()

# ---------------------- Auth Routes ----------------------
@app.get("/login", response_class=HTMLResponse)
def login_form(request: Request, next: str | None = "/"):
    return render(request, "login.html", {"next": next})

@app.post("/login")
def login_post(
    request: Request,
    username: str = Form(...),
    password: str = Form(...),
    next: str = Form("/"),
    db: Session = Depends(get_db),
):
    user = crud.get_user_by_username(db, username)
    if user and verify_password(password, user.password_hash):
        start_session(request, user)
        logger.info("User %s logged in", user.username)
        if not _is_safe_next(next):
            next = "/"
        return RedirectResponse(next, status_code=303)
    logger.warning("Failed login for %s", username)
    return RedirectResponse(f"{LOGIN_PATH}?error=Invalid%20username%20or%20password&next={quote(next)}", status_code=303)

@app.get("/logout")
def logout(request: Request):
    end_session(request)
    return RedirectResponse(LOGIN_PATH, status_code=303)

@app.post("/password-reset")
def password_reset(
    username: str = Form(...),
    email: str = Form(...),
    new_password: str = Form(...),
    db: Session = Depends(get_db),
):
    try:
        crud.reset_password(db, username, email, new_password)
    except ValueError as exc:
        logger.warning("Password reset rejected for %s: %s", username, exc)
        return _redirect(LOGIN_PATH, error=str(exc))
    return _redirect(LOGIN_PATH, message="Password updated, you can log in now.")

@app.post("/profile/theme")
def update_theme(
    request: Request,
    theme: str = Form(...),
    next: str = Form("/"),
    db: Session = Depends(get_db),
    user: SessionUser = Depends(require_user),
):
    try:
        chosen = Theme(theme)
    except ValueError:
        raise HTTPException(status_code=400, detail="Unknown theme")
    refresh_session(request, crud.update_theme(db, db.get(User, user.id), chosen))
    return RedirectResponse(next if _is_safe_next(next) else "/", status_code=303)

# ---------------------- Dashboard ----------------------
def _dashboard_context(accounts) -> dict:
    by_month = totals_by_month(accounts)
    by_category = totals_by_category(accounts)
    return {
        "stats": dashboard_stats(accounts),
        "by_month": by_month,
        "by_category": by_category,
        "month_peak": max((total for _, total in by_month), default=0),
        "category_peak": max((total for _, total in by_category), default=0),
        "current_month": date.today().replace(day=1),
        "insights_enabled": insights_client.enabled,
        "insights": None,
    }

@app.get("/", response_class=HTMLResponse)
def dashboard(request: Request, db: Session = Depends(get_db), user: SessionUser = Depends(require_user)):
    return render(request, "dashboard.html", _dashboard_context(crud.list_accounts(db)), user)

@app.post("/insights", response_class=HTMLResponse)
def dashboard_insights(request: Request, db: Session = Depends(get_db), user: SessionUser = Depends(require_user)):
    accounts = crud.list_accounts(db)
    context = _dashboard_context(accounts)
    context["insights"] = insights_client.insights(accounts)
    return render(request, "dashboard.html", context, user)

# ---------------------- Accounts: listing ----------------------
@app.get("/accounts", response_class=HTMLResponse)
def list_accounts(request: Request, db: Session = Depends(get_db), user: SessionUser = Depends(require_user)):
    accounts = crud.list_accounts(db)
    query = _account_query(request)
    result = run_query(accounts, query)
    if result.page.total_pages and query.page > result.page.total_pages:
        query = replace(query, page=clamp_page(query.page, result.page.total_pages))
        result = run_query(accounts, query)

    return render(request, "accounts.html", {
        "query": query,
        "page": result.page,
        "filters_active": has_active_filters(query),
        "registered": len(accounts),
        "vocab": crud.get_vocabularies(db),
        "query_url": lambda **overrides: _query_url("/accounts", query, **overrides),
        "back_url": _query_url("/accounts", query),
        "report_url": _query_url("/accounts/report.pdf", query),
        "due_state": due_state,
        "today": date.today(),
    }, user)

@app.get("/api/accounts", response_model=AccountPageOut)
def api_accounts(request: Request, db: Session = Depends(get_db), user: SessionUser = Depends(require_user)):
    result = run_query(crud.list_accounts(db), _account_query(request))
    return AccountPageOut(
        items=[AccountOut.model_validate(acc) for acc in result.page.items],
        page=result.page.number,
        total_pages=result.page.total_pages,
        total=result.page.total,
    )

@app.get("/accounts/report.pdf")
def accounts_report(request: Request, db: Session = Depends(get_db), user: SessionUser = Depends(require_user)):
    result = run_query(crud.list_accounts(db), _account_query(request))
    content = build_accounts_report(result.filtered)
    filename = f"accounts_report_{datetime.now():%Y%m%d_%H%M%S}.pdf"
    return Response(
        content,
        media_type="application/pdf",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )

# ---------------------- Accounts: bulk actions ----------------------
@app.post("/accounts/bulk-delete")
def bulk_delete(
    ids: List[int] = Form([]),
    back: str = Form("/accounts"),
    db: Session = Depends(get_db),
    user: SessionUser = Depends(require_user),
):
    back = back if _is_safe_next(back) else "/accounts"
    selected = prune_selection(ids, crud.list_accounts(db))
    if not selected:
        return _redirect(back, error="No accounts selected.")
    _discard_files(crud.delete_many(db, selected))
    return _redirect(back, message=f"{len(selected)} account(s) deleted.")

@app.post("/accounts/bulk-status")
def bulk_status(
    ids: List[int] = Form([]),
    status: str = Form(STATUS_PAID),
    back: str = Form("/accounts"),
    db: Session = Depends(get_db),
    user: SessionUser = Depends(require_user),
):
    back = back if _is_safe_next(back) else "/accounts"
    status = status.strip().upper()
    if status not in crud.get_vocabularies(db).account_statuses:
        return _redirect(back, error=f"Unknown status {status}.")
    selected = prune_selection(ids, crud.list_accounts(db))
    if not selected:
        return _redirect(back, error="No accounts selected.")
    crud.update_status_many(db, selected, status)
    return _redirect(back, message=f"{len(selected)} account(s) marked as {status}.")

# ---------------------- Accounts: create / edit ----------------------
def _render_account_form(request, db, user, form: dict, account=None, error=None, status_code=200):
    return render(request, "account_form.html", {
        "account": account,
        "form": form,
        "installments": {"count": 2, "interval_days": 30, "value_mode": ValueMode.TOTAL.value},
        "vocab": crud.get_vocabularies(db),
        "error": error or request.query_params.get("error"),
    }, user, status_code=status_code)

@app.get("/accounts/new", response_class=HTMLResponse)
def new_account(request: Request, db: Session = Depends(get_db), user: SessionUser = Depends(require_user)):
    return _render_account_form(request, db, user, AccountIn().model_dump(mode="json"))

@app.post("/accounts")
def create_account(
    request: Request,
    form: dict = Depends(account_form),
    files: Optional[List[UploadFile]] = File(None),
    db: Session = Depends(get_db),
    user: SessionUser = Depends(require_user),
):
    try:
        data = _validated_account(db, form)
        attachments = file_storage.upload_many(_read_uploads(files))
    except ValueError as exc:
        logger.warning("Rejected account form: %s", exc)
        return _render_account_form(request, db, user, form, error=_error_text(exc), status_code=400)
    crud.insert_one(db, data, attachments)
    return _redirect("/accounts", message="Account saved.")

@app.post("/accounts/installments/preview", response_class=HTMLResponse)
def preview_installments(
    request: Request,
    form: dict = Depends(account_form),
    plan: dict = Depends(installment_form),
    db: Session = Depends(get_db),
    user: SessionUser = Depends(require_user),
):
    try:
        template = _validated_account(db, form)
        config = InstallmentConfig.model_validate(plan)
        preview = InstallmentPreview(template, config)
    except ValueError as exc:
        logger.warning("Rejected installment plan: %s", exc)
        return _render_account_form(request, db, user, form, error=_error_text(exc), status_code=400)
    return render(request, "installments.html", {
        "form": form,
        "config": config,
        "preview": preview,
    }, user)

@app.post("/accounts/installments")
def commit_installments(
    request: Request,
    form: dict = Depends(account_form),
    plan: dict = Depends(installment_form),
    titles: List[str] = Form([]),
    due_dates: List[str] = Form([]),
    amounts: List[str] = Form([]),
    db: Session = Depends(get_db),
    user: SessionUser = Depends(require_user),
):
    try:
        template = _validated_account(db, form)
        config = InstallmentConfig.model_validate(plan)
        preview = InstallmentPreview(template, config)
    except ValueError as exc:
        return _render_account_form(request, db, user, form, error=_error_text(exc), status_code=400)

    try:
        for index, (title, due, amount) in enumerate(zip(titles, due_dates, amounts)):
            preview.edit(index, title=title or None, due_date=due or None, amount=amount or None)
    except (ValueError, IndexError) as exc:
        logger.warning("Rejected installment edits: %s", exc)
        return render(request, "installments.html", {
            "form": form, "config": config, "preview": preview, "error": str(exc),
        }, user, status_code=400)

    crud.insert_many(db, preview.records())
    return _redirect("/accounts", message=f"{len(preview)} installments saved.")

@app.get("/accounts/import", response_class=HTMLResponse)
def import_form(request: Request, user: SessionUser = Depends(require_user)):
    return render(request, "import.html", {}, user)

@app.post("/accounts/import")
def import_accounts(
    request: Request,
    file: UploadFile = File(...),
    db: Session = Depends(get_db),
    user: SessionUser = Depends(require_user),
):
    try:
        records = parse_accounts_csv(file.file.read(), vocabularies=crud.get_vocabularies(db))
    except ValueError as exc:
        logger.warning("Rejected import %s: %s", file.filename, exc)
        return render(request, "import.html", {"error": str(exc)}, user, status_code=400)
    crud.insert_many(db, records)
    return _redirect("/accounts", message=f"{len(records)} accounts imported.")

def _get_account_or_404(db: Session, account_id: int):
    account = crud.get_account(db, account_id)
    if not account:
        raise HTTPException(status_code=404, detail="Account not found")
    return account

@app.get("/accounts/{account_id:int}/edit", response_class=HTMLResponse)
def edit_account(account_id: int, request: Request, db: Session = Depends(get_db), user: SessionUser = Depends(require_user)):
    account = _get_account_or_404(db, account_id)
    form = AccountIn.model_validate(account, from_attributes=True).model_dump(mode="json")
    return _render_account_form(request, db, user, form, account=account)

@app.post("/accounts/{account_id:int}")
def update_account(
    account_id: int,
    request: Request,
    form: dict = Depends(account_form),
    files: Optional[List[UploadFile]] = File(None),
    db: Session = Depends(get_db),
    user: SessionUser = Depends(require_user),
):
    account = _get_account_or_404(db, account_id)
    try:
        data = _validated_account(db, form)
        attachments = file_storage.upload_many(_read_uploads(files))
    except ValueError as exc:
        logger.warning("Rejected edit of account %s: %s", account_id, exc)
        return _render_account_form(request, db, user, form, account=account, error=_error_text(exc), status_code=400)
    crud.update_one(db, account, data)
    if attachments:
        crud.add_attachments(db, account, attachments)
    return _redirect("/accounts", message="Account updated.")

@app.post("/accounts/{account_id:int}/delete")
def delete_account(account_id: int, back: str = Form("/accounts"), db: Session = Depends(get_db), user: SessionUser = Depends(require_user)):
    _get_account_or_404(db, account_id)
    _discard_files(crud.delete_many(db, [account_id]))
    return _redirect(back if _is_safe_next(back) else "/accounts", message="Account deleted.")

@app.post("/accounts/{account_id:int}/attachments/{attachment_id:int}/delete")
def delete_attachment(account_id: int, attachment_id: int, db: Session = Depends(get_db), user: SessionUser = Depends(require_user)):
    account = _get_account_or_404(db, account_id)
    storage_key = crud.remove_attachment(db, account, attachment_id)
    if storage_key is None:
        raise HTTPException(status_code=404, detail="Attachment not found")
    _discard_files([storage_key])
    return _redirect(f"/accounts/{account_id}/edit", message="Attachment removed.")

@app.get("/files/{storage_key}")
def download_attachment(storage_key: str, user: SessionUser = Depends(require_user)):
    try:
        path = file_storage.path_for(storage_key)
    except ValueError:
        raise HTTPException(status_code=404, detail="File not found")
    if not path.is_file():
        raise HTTPException(status_code=404, detail="File not found")
    return FileResponse(path)

# ---------------------- Users (admin) ----------------------
@app.get("/users", response_class=HTMLResponse)
def list_users(request: Request, db: Session = Depends(get_db), user: SessionUser = Depends(require_admin)):
    return render(request, "users.html", {"users": crud.list_users(db), "roles": list(UserRole)}, user)

@app.post("/users")
def create_user(
    username: str = Form(...),
    full_name: str = Form(""),
    email: str = Form(...),
    password: str = Form(...),
    role: str = Form(UserRole.USER.value),
    db: Session = Depends(get_db),
    user: SessionUser = Depends(require_admin),
):
    try:
        crud.create_user(db, UserCreate(username=username, full_name=full_name, email=email, password=password, role=role))
    except ValueError as exc:
        logger.warning("Rejected new user %s: %s", username, exc)
        return _redirect("/users", error=_error_text(exc))
    return _redirect("/users", message=f"User {username} created.")

@app.post("/users/{user_id:int}")
def update_user(
    user_id: int,
    username: str = Form(...),
    full_name: str = Form(""),
    email: str = Form(...),
    password: str = Form(""),
    role: str = Form(UserRole.USER.value),
    db: Session = Depends(get_db),
    user: SessionUser = Depends(require_admin),
):
    target = db.get(User, user_id)
    if not target:
        raise HTTPException(status_code=404, detail="User not found")
    try:
        crud.update_user(db, target, UserUpdate(
            username=username, full_name=full_name, email=email, password=password or None, role=role,
        ))
    except ValueError as exc:
        logger.warning("Rejected update of user %s: %s", user_id, exc)
        return _redirect("/users", error=_error_text(exc))
    return _redirect("/users", message=f"User {username} updated.")

@app.post("/users/{user_id:int}/delete")
def delete_user(user_id: int, db: Session = Depends(get_db), user: SessionUser = Depends(require_admin)):
    target = db.get(User, user_id)
    if not target:
        raise HTTPException(status_code=404, detail="User not found")
    if target.id == user.id:
        return _redirect("/users", error="You cannot delete your own user.")
    username = target.username
    crud.delete_user(db, target)
    return _redirect("/users", message=f"User {username} deleted.")

# ---------------------- Vocabularies (admin) ----------------------
@app.get("/settings", response_class=HTMLResponse)
def settings_page(request: Request, db: Session = Depends(get_db), user: SessionUser = Depends(require_admin)):
    return render(request, "settings.html", {"vocab": crud.get_vocabularies(db)}, user)

@app.post("/settings/{kind}")
def add_vocabulary_value(kind: str, value: str = Form(...), db: Session = Depends(get_db), user: SessionUser = Depends(require_admin)):
    try:
        crud.add_vocabulary_value(db, kind, value)
    except crud.VocabularyError as exc:
        return _redirect("/settings", error=str(exc))
    return _redirect("/settings", message="Settings saved.")

@app.post("/settings/{kind}/{index:int}")
def rename_vocabulary_value(kind: str, index: int, value: str = Form(...), db: Session = Depends(get_db), user: SessionUser = Depends(require_admin)):
    try:
        crud.rename_vocabulary_value(db, kind, index, value)
    except crud.VocabularyError as exc:
        return _redirect("/settings", error=str(exc))
    return _redirect("/settings", message="Settings saved.")
