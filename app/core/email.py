from pathlib import Path
from datetime import datetime
import logging

from app.core.config import settings

logger = logging.getLogger("projectdrop.email")


def send_local_email(to_email: str, subject: str, body: str) -> str:
    """Write the mail to the local mail log instead of sending it."""
    email_dir = Path(settings.email_log_dir)
    email_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.utcnow().strftime("%Y%m%dT%H%M%S%fZ")
    safe_email = to_email.replace("@", "_at_")
    filename = email_dir / f"email_{timestamp}_{safe_email}.txt"

    content = f"To: {to_email}\nSubject: {subject}\n\n{body}\n"
    filename.write_text(content)

    logger.info("Logged mail '%s' to %s", subject, to_email)
    return str(filename)
