from pathlib import Path
import os

BASE_DIR = Path(__file__).resolve().parent.parent
SECRET_KEY = os.getenv("DJANGO_SECRET_KEY", "dev-insecure")
DEBUG = os.getenv("DEBUG", "1") == "1"
ALLOWED_HOSTS = os.getenv("ALLOWED_HOSTS", "127.0.0.1,localhost,autograder").split(",")

INSTALLED_APPS = [
    "jazzmin",
    "django.contrib.admin",
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",
    "students",
    "assignments",
    "grades",
    "notifications",
]

JAZZMIN_SETTINGS = {
    "site_title": "AutoGrader Admin",
    "site_header": "AutoGrader",
    "site_brand": "AutoGrader",
    "welcome_sign": "Welcome to the AutoGrader Admin Panel",
    "show_sidebar": True,
    "navigation_expanded": True,
    "order_with_respect_to": ["students", "grades", "notifications"],
    "icons": {
        "auth": "fas fa-users-cog",
        "students.Student": "fas fa-user-graduate",
        "grades.Submission": "fas fa-graduation-cap",
        "notifications.OutboxJob": "fas fa-envelope",
    },
    "default_icon_parents": "fas fa-chevron-circle-right",
    "default_icon_children": "fas fa-circle",
    "related_modal_active": True,
}

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "django.contrib.messages.middleware.MessageMiddleware",
    "django.middleware.clickjacking.XFrameOptionsMiddleware",
]

ROOT_URLCONF = "AutoGrader.urls"

TEMPLATES = [{
    "BACKEND": "django.template.backends.django.DjangoTemplates",
    "DIRS": [],
    "APP_DIRS": True,
    "OPTIONS": {
        "context_processors": [
            "django.template.context_processors.debug",
            "django.template.context_processors.request",
            "django.contrib.auth.context_processors.auth",
            "django.contrib.messages.context_processors.messages",
        ],
    },
}]

WSGI_APPLICATION = "AutoGrader.wsgi.application"

_db = os.getenv("DATABASE_URL", "").strip()
if _db:
    if _db.startswith("sqlite:///"): _db = _db.replace("sqlite:///", "", 1)
    DATABASES = {"default": {"ENGINE": "django.db.backends.sqlite3", "NAME": _db}}
else:
    DATABASES = {"default": {"ENGINE": "django.db.backends.sqlite3", "NAME": BASE_DIR / "db.sqlite3"}}

STATIC_URL = "/static/"
STATIC_ROOT = BASE_DIR / "staticfiles"

LANGUAGE_CODE = "en-us"
TIME_ZONE = "UTC"
USE_I18N = True
USE_TZ = True
DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {"plain": {"format": "%(asctime)s %(levelname)s %(name)s: %(message)s"}},
    "handlers": {"console": {"class": "logging.StreamHandler", "formatter": "plain"}},
    "root": {"handlers": ["console"], "level": os.getenv("LOG_LEVEL", "INFO")},
    "loggers": {"django": {"handlers": ["console"], "level": "INFO", "propagate": False}},
}

# Course / catalog
COURSE_REPO_NAME = os.getenv("COURSE_REPO_NAME", "")  # falls back to course.repoName in the catalog
ASSIGNMENT_SPECS_PATH = os.getenv(
    "ASSIGNMENT_SPECS_PATH", str(BASE_DIR / "assignments" / "data" / "assignment_specs.json")
)

# GitHub
GITHUB_TOKEN = os.getenv("GITHUB_TOKEN", "")
GITHUB_API_URL = os.getenv("GITHUB_API_URL", "https://api.github.com").rstrip("/")
GITHUB_TIMEOUT_S = float(os.getenv("GITHUB_TIMEOUT_S", "15"))

# Sandbox
GRADER_SANDBOX_BACKEND = os.getenv("GRADER_SANDBOX_BACKEND", "docker")  # "subprocess" for local development
GRADER_SANDBOX_TIMEOUT_MS = int(os.getenv("GRADER_SANDBOX_TIMEOUT_MS", "2000"))
GRADER_SANDBOX_MEMORY_MB = int(os.getenv("GRADER_SANDBOX_MEMORY_MB", "256"))
GRADER_DOCKER_IMAGE = os.getenv("GRADER_DOCKER_IMAGE", "python:3.12-slim")

# Email (SMTP settings are mapped onto Django's EMAIL_* names)
EMAIL_ENABLED = os.getenv("EMAIL_ENABLED", "0").lower() in ("1", "true", "yes", "on")
EMAIL_BACKEND = os.getenv("EMAIL_BACKEND", "django.core.mail.backends.smtp.EmailBackend")
EMAIL_HOST = os.getenv("SMTP_HOST", "smtp.gmail.com")
EMAIL_PORT = int(os.getenv("SMTP_PORT", "465"))
_smtp_secure = os.getenv("SMTP_SECURE", "")
EMAIL_USE_SSL = _smtp_secure.lower() in ("1", "true", "yes", "on") if _smtp_secure else EMAIL_PORT == 465
EMAIL_USE_TLS = not EMAIL_USE_SSL and EMAIL_PORT == 587
EMAIL_HOST_USER = os.getenv("SMTP_USER", "")
EMAIL_HOST_PASSWORD = os.getenv("SMTP_PASS", "")
EMAIL_TIMEOUT = int(os.getenv("SMTP_TIMEOUT", "30"))
EMAIL_FROM_NAME = os.getenv("EMAIL_FROM_NAME", "Course Instructor")
EMAIL_FROM_ADDRESS = os.getenv("EMAIL_FROM_ADDRESS", "")
EMAIL_REPLY_TO = os.getenv("EMAIL_REPLY_TO", "")

OUTBOX_BATCH_LIMIT = int(os.getenv("OUTBOX_BATCH_LIMIT", "20"))

# Celery
CELERY_BROKER_URL = os.getenv("CELERY_BROKER_URL", "redis://redis:6379/0")
CELERY_RESULT_BACKEND = os.getenv("CELERY_RESULT_BACKEND", "redis://redis:6379/0")
CELERY_TIMEZONE = TIME_ZONE
CELERY_TASK_TIME_LIMIT = int(os.getenv("CELERY_TASK_TIME_LIMIT", "300"))
CELERY_TASK_SOFT_TIME_LIMIT = int(os.getenv("CELERY_TASK_SOFT_TIME_LIMIT", "240"))
CELERY_TASK_ALWAYS_EAGER = os.getenv("CELERY_TASK_ALWAYS_EAGER", "0") == "1"
