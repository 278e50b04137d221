import os

# 기본 디렉토리 설정
BASE_DIR = os.path.dirname(os.path.abspath(__file__))

# 경로 설정
LOG_FILE = os.path.join(BASE_DIR, "launch.log")

# 서버 설정
DEFAULT_HOST = os.getenv("HOST", "127.0.0.1")
DEFAULT_PORT = int(os.getenv("PORT", "8000"))

# Assessment Repository (OLPM 백엔드) 설정
API_BASE_URL = os.getenv("OLPM_API_BASE", "http://localhost:5000/api")
API_TOKEN = os.getenv("OLPM_API_TOKEN", "")
REQUEST_TIMEOUT = float(os.getenv("OLPM_REQUEST_TIMEOUT", "15.0"))

# 타이머 설정
TICK_INTERVAL_SECONDS = float(os.getenv("OLPM_TICK_INTERVAL", "1.0"))
LOW_TIME_WARNING_SECONDS = 300   # 5분 이하이면 경고 표시

# 채점 표시 설정 (점수 계산 자체는 서버 책임)
PASS_PERCENTAGE = 60.0

# 세션 설정
SESSION_TTL = 3600              # 1시간
SESSION_CLEANUP_INTERVAL = 300  # 5분마다 만료 세션 정리
