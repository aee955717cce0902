from autodonate import create_app
from autodonate.realtime import socketio
from autodonate.utils.logger import get_logger
import os

logger = get_logger("run")

app = create_app()

if __name__ == "__main__":
    port = int(os.getenv("PORT", 5050))
    try:
        socketio.run(
            app,
            host="127.0.0.1",
            port=port,
            debug=False,
            use_reloader=False,
            log_output=True,
            allow_unsafe_werkzeug=True,
        )
    finally:
        db = app.extensions["autodonate"].db
        if db is not None:
            db.close()
        logger.info("autodonate stopped.")

# Local cron (one pass per minute, like the hosted scheduler):
# python scripts/simulate_cron.py
#
# Queue worker for notifications (USE_NOTIFY_QUEUE=1):
# rq worker -u $REDIS_URL --with-scheduler
