"""
main.py — OLPM CBT 응시 엔진 로컬 API 서버 진입점
"""

import os
import socket
import sys
import threading
import time
import logging
import traceback

# ── 패키지 경로 설정 (반드시 최상단) ──────────────────────────────────────────
# 실행 경로를 BASE_DIR로 설정하고 olpm_cbt를 모듈 경로에 추가합니다.
_BASE_DIR = os.path.dirname(os.path.abspath(__file__))
if _BASE_DIR not in sys.path:
    sys.path.insert(0, _BASE_DIR)

from config import API_BASE_URL, BASE_DIR, DEFAULT_HOST, DEFAULT_PORT, LOG_FILE

# ── 로깅 설정 ────────────────────────────────────────────────────────────────

def setup_logging(level: int = logging.INFO) -> None:
    try:
        logging.basicConfig(
            level=level,
            format='%(asctime)s [%(levelname)s] %(name)s: %(message)s',
            handlers=[
                logging.FileHandler(LOG_FILE, encoding='utf-8'),
                logging.StreamHandler(sys.stdout)
            ]
        )
    except PermissionError:
        # 로그 파일 점유 시 콘솔 출력만 사용
        logging.basicConfig(level=level)


logger = logging.getLogger(__name__)

# ── 서버 유틸 ────────────────────────────────────────────────────────────────

def _wait_for_server(port: int, timeout: float = 15.0) -> bool:
    deadline = time.time() + timeout
    while time.time() < deadline:
        try:
            with socket.create_connection((DEFAULT_HOST, port), timeout=0.5):
                return True
        except OSError:
            time.sleep(0.1)
    return False


def _start_server(port: int) -> None:
    try:
        import uvicorn
        from api.app import create_app
        logger.info(f"Uvicorn 서버 시작 - Port: {port}")
        app = create_app()
        uvicorn.run(app, host=DEFAULT_HOST, port=port, log_level="warning")
    except Exception:
        logger.error(f"서버 오류 발생:\n{traceback.format_exc()}")

# ── 메인 실행 ────────────────────────────────────────────────────────────────

if __name__ == "__main__":
    setup_logging()
    logger.info("=== OLPM CBT Engine Started ===")
    logger.info(f"Assessment Repository: {API_BASE_URL}")
    os.chdir(BASE_DIR)

    server_thread = threading.Thread(target=_start_server, args=(DEFAULT_PORT,), daemon=True)
    server_thread.start()

    if _wait_for_server(DEFAULT_PORT):
        logger.info(f"서버 준비 완료: http://{DEFAULT_HOST}:{DEFAULT_PORT}")
        # 메인 스레드 유지
        try:
            while server_thread.is_alive():
                time.sleep(1)
        except KeyboardInterrupt:
            logger.info("사용자에 의해 종료되었습니다.")
    else:
        logger.error("서버 시작 제한 시간을 초과했습니다. 포트가 이미 사용 중인지 확인해 보세요.")
        sys.exit(1)
