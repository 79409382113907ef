import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Cookie, Depends, FastAPI, Header, HTTPException, Request

from app import crud
from app.config import Settings
from app.database import DataManager, db_initialized, get_db, init_db
from app.maintenance import Maintenance
from app.models import to_iso
from app.schemas import DeadlineIn, PostDetailsIn, PredictionIn, RestoreIn, ResultIn, SessionIn
from app.scoring import ResultAnnouncer, ScoringConfig

logger = logging.getLogger(__name__)

settings = Settings.from_env()
scoring = ScoringConfig()

SUBMISSION_ERRORS = {
    crud.INVALID_SCORE: (400, "Geçersiz skor. 0-99 arası bir değer girin."),
    crud.INVALID_RUMUZ: (400, "Kullanıcı adı 2-30 karakter olmalı ve sadece harf, rakam, alt çizgi içerebilir."),
    crud.NOT_FOUND: (404, "Etkinlik bulunamadı"),
    crud.CLOSED: (403, "Tahmin süresi dolmuş"),
    crud.NO_SESSION: (401, "Geçersiz oturum"),
    crud.DUPLICATE: (409, "Bu etkinlik için zaten tahmin yaptınız"),
    crud.NOT_SAVED: (500, "Tahmin kaydedilemedi"),
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    if db_initialized():
        db = get_db()
    else:
        db = init_db(DataManager(
            settings.data_dir,
            settings.backup_dir,
            strict=settings.strict_storage,
            correct_points=scoring.correct_points,
        ))

    resumed = await announcer(db).resume_pending()
    if resumed:
        logger.info(f"✅ Finished {len(resumed)} interrupted result announcements")

    maintenance = Maintenance(
        db,
        session_cleanup_hours=settings.session_cleanup_hours,
        backup_interval_hours=settings.backup_interval_hours,
        backup_keep_days=settings.backup_keep_days,
    )
    if getattr(app.state, "run_maintenance", True):
        maintenance.start()
    try:
        yield
    finally:
        await maintenance.stop()


app = FastAPI(title="Score Prediction League API", lifespan=lifespan)


def admin_auth(key: str):
    if key != settings.admin_key:
        raise HTTPException(status_code=401, detail="Unauthorized")


def announcer(db: DataManager) -> ResultAnnouncer:
    return ResultAnnouncer(db, scoring, notifier=getattr(app.state, "winner_notifier", None))


def session_token(user_token: Optional[str] = Cookie(None, alias="userToken"),
                  x_session_token: Optional[str] = Header(None)) -> Optional[str]:
    return x_session_token or user_token


@app.get("/health")
async def health():
    return {
        "status": "ok",
        "timestamp": to_iso(get_db().clock()),
        "bot": getattr(app.state, "count_listener", None) is not None,
        "storage": "json",
    }


# Widget API

@app.post("/api/session")
async def open_session(body: Optional[SessionIn] = None, db: DataManager = Depends(get_db)):
    body = body or SessionIn()
    telegram_id = crud.verified_telegram_id(settings.session_secret, body.telegram_id, body.signature)
    if body.telegram_id and telegram_id is None:
        logger.warning("Unverified telegram_id in session request, opening an anonymous session")

    token = await crud.open_session(db, telegram_id, body.username, settings.session_days)
    if not token:
        raise HTTPException(status_code=500, detail="Oturum oluşturulamadı")
    return {"token": token, "expiresInDays": settings.session_days, "telegramId": telegram_id}


@app.post("/api/logout")
async def logout(token: Optional[str] = Depends(session_token), db: DataManager = Depends(get_db)):
    if token:
        await db.sessions.delete(token)
    return {"success": True}


@app.get("/api/posts/active")
async def active_posts(db: DataManager = Depends(get_db)):
    return await db.posts.get_active()


@app.get("/api/posts/{post_id}")
async def get_post(post_id: str, token: Optional[str] = Depends(session_token), db: DataManager = Depends(get_db)):
    post = await db.posts.get(post_id)
    if not post:
        raise HTTPException(status_code=404, detail="Etkinlik bulunamadı")

    session = await db.sessions.validate(token)
    telegram_id = session.get("telegramId") if session else None
    return {
        "post": {**post, "id": post_id},
        "predictionCount": await db.predictions.get_count(post_id),
        "predictionOpen": crud.is_prediction_open(post, db.clock()),
        "hasAlreadyPredicted": bool(session) and await db.predictions.check_duplicate(post_id, telegram_id, token),
        "result": await db.results.get(post_id),
    }


@app.get("/api/predictions/{post_id}")
async def list_predictions(post_id: str, page: int = 1, limit: int = 20, db: DataManager = Depends(get_db)):
    return await db.predictions.get_page(post_id, page, limit)


@app.get("/api/stats/{post_id}")
async def post_stats(post_id: str, db: DataManager = Depends(get_db)):
    return {
        "stats": await db.predictions.get_stats(post_id),
        "popular": await db.predictions.get_popular_scores(post_id, scoring.popular_scores_limit),
    }


@app.get("/api/leaderboard")
async def leaderboard(limit: int = 10, db: DataManager = Depends(get_db)):
    return await db.user_stats.get_leaderboard(min(limit, scoring.leaderboard_limit))


@app.get("/api/users/{telegram_id}")
async def user_profile(telegram_id: str, db: DataManager = Depends(get_db)):
    stats = await db.user_stats.get(telegram_id)
    if not stats:
        raise HTTPException(status_code=404, detail="User not found")
    return {"stats": stats, "predictions": await db.predictions.get_by_user(telegram_id)}


@app.post("/api/predict/{post_id}")
async def predict(post_id: str, body: PredictionIn, request: Request,
                  token: Optional[str] = Depends(session_token), db: DataManager = Depends(get_db)):
    try:
        submission = await crud.submit_prediction(
            db,
            post_id,
            body.home,
            body.away,
            body.rumuz,
            token,
            hidden=body.hidden,
            ip_address=request.client.host if request.client else None,
            user_agent=request.headers.get("user-agent"),
            on_accepted=getattr(app.state, "count_listener", None),
        )
    except Exception as e:
        logger.error(f"Prediction error: {e}")
        raise HTTPException(status_code=500, detail="Bir hata oluştu. Lütfen tekrar deneyin.")

    if not submission.accepted:
        status_code, detail = SUBMISSION_ERRORS[submission.status]
        raise HTTPException(status_code=status_code, detail=detail)
    return {"success": True, "predictionId": submission.prediction_id, "message": "Tahmin başarıyla kaydedildi!"}


# Admin API

@app.post("/admin/result/{post_id}")
async def set_result(post_id: str, body: ResultIn, key: str = "", db: DataManager = Depends(get_db)):
    admin_auth(key)
    home = crud.validate_score(body.home)
    away = crud.validate_score(body.away)
    if home is None or away is None:
        raise HTTPException(status_code=400, detail="Geçersiz skor")
    if not await db.posts.get(post_id):
        raise HTTPException(status_code=404, detail="Etkinlik bulunamadı")

    try:
        settled = await announcer(db).announce(post_id, home, away)
    except Exception as e:
        logger.error(f"Result error for {post_id}: {e}")
        raise HTTPException(status_code=500, detail="Sonuç kaydedilemedi")
    return settled


@app.post("/admin/posts/{post_id}/details")
async def update_details(post_id: str, body: PostDetailsIn, key: str = "", db: DataManager = Depends(get_db)):
    admin_auth(key)
    if not await crud.update_post_details(db, post_id, body.title, body.home_team, body.away_team):
        raise HTTPException(status_code=404, detail="Etkinlik bulunamadı")
    return {"success": True}


@app.post("/admin/posts/{post_id}/deadline")
async def update_deadline(post_id: str, body: DeadlineIn, key: str = "", db: DataManager = Depends(get_db)):
    admin_auth(key)
    try:
        updated = await crud.set_deadline(db, post_id, body.deadline)
    except ValueError:
        raise HTTPException(status_code=400, detail="Geçersiz tarih")
    if not updated:
        raise HTTPException(status_code=404, detail="Etkinlik bulunamadı")
    return {"success": True, "deadline": (await db.posts.get(post_id) or {}).get("deadline")}


@app.delete("/admin/posts/{post_id}")
async def delete_post(post_id: str, key: str = "", db: DataManager = Depends(get_db)):
    admin_auth(key)
    return {"success": await db.posts.delete(post_id)}


@app.get("/admin/backups")
async def list_backups(key: str = "", db: DataManager = Depends(get_db)):
    admin_auth(key)
    return await db.backups.list_backups()


@app.post("/admin/backup")
async def create_backup(key: str = "", db: DataManager = Depends(get_db)):
    admin_auth(key)
    try:
        path = await db.backups.create()
    except OSError as e:
        logger.error(f"Backup error: {e}")
        raise HTTPException(status_code=500, detail="Yedekleme başarısız")
    return {"success": True, "backupPath": str(path)}


@app.post("/admin/restore")
async def restore_backup(body: RestoreIn, key: str = "", db: DataManager = Depends(get_db)):
    admin_auth(key)
    if not body.name or "/" in body.name or "\\" in body.name or body.name.startswith("."):
        raise HTTPException(status_code=400, detail="Invalid backup name")
    try:
        restored = await db.backups.restore(db.backups.backup_dir / body.name)
    except FileNotFoundError:
        raise HTTPException(status_code=404, detail="Backup not found")
    return {"success": True, "restored": restored}
