from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from learning_bot.config import missing_env_vars
from learning_bot.gcal import GoogleCalendarStore
from learning_bot.routes import router, drain_background_tasks

logging.basicConfig(level=logging.INFO,
                    format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger("learning_bot")


@asynccontextmanager
async def lifespan(_app: FastAPI):
  missing = missing_env_vars()
  if missing:
    logger.warning("Missing environment variables: %s", ", ".join(missing))
  else:
    try:
      await GoogleCalendarStore().connect()
      logger.info("Google Calendar connection verified")
    except Exception:
      logger.exception("Google Calendar connection check failed")
  yield
  await drain_background_tasks()


app = FastAPI(lifespan=lifespan)
app.include_router(router)
