#!/usr/bin/env python3
"""
Запуск API в режиме разработки с автоперезагрузкой.

Следит за пакетами приложения и main.py. Тесты, скрипты и логи
не перезапускают сервер.
"""
import subprocess
import sys
import time
from pathlib import Path
from typing import Iterable, Optional

from loguru import logger
from watchdog.events import FileSystemEvent, PatternMatchingEventHandler
from watchdog.observers import Observer


PROJECT_ROOT = Path(__file__).resolve().parent

# Те же пакеты, что устанавливаются из pyproject.toml
SOURCE_PACKAGES = ("api", "config", "database", "services")
ENTRY_POINT = "main.py"

RESTART_DELAY = 2.0
STOP_TIMEOUT = 10.0


def is_watched(path: str, root: Path = PROJECT_ROOT) -> bool:
    """Изменение этого файла требует перезапуска API"""
    try:
        relative = Path(path).resolve().relative_to(root.resolve())
    except ValueError:
        return False

    if relative.suffix != ".py" or "__pycache__" in relative.parts:
        return False
    if relative.parts == (ENTRY_POINT,):
        return True
    return len(relative.parts) > 1 and relative.parts[0] in SOURCE_PACKAGES


class ApiProcess:
    """Дочерний процесс с API"""

    def __init__(self, command: Iterable[str]):
        self.command = list(command)
        self.process: Optional[subprocess.Popen] = None

    def start(self) -> None:
        logger.info("🚀 Starting API...")
        self.process = subprocess.Popen(self.command, cwd=PROJECT_ROOT)

    def stop(self) -> None:
        if not self.process or self.process.poll() is not None:
            return
        logger.info("🛑 Stopping API...")
        self.process.terminate()
        try:
            self.process.wait(timeout=STOP_TIMEOUT)
        except subprocess.TimeoutExpired:
            logger.warning("⚠️ API did not stop in time, killing")
            self.process.kill()
            self.process.wait()

    def restart(self) -> None:
        self.stop()
        self.start()

    @property
    def exited(self) -> bool:
        return self.process is not None and self.process.poll() is not None


class SourceChangeHandler(PatternMatchingEventHandler):
    """Перезапускает API при изменении исходников, не чаще раза в RESTART_DELAY секунд"""

    def __init__(self, api: ApiProcess, root: Path = PROJECT_ROOT, clock=time.monotonic):
        super().__init__(patterns=["*.py"], ignore_directories=True)
        self.api = api
        self.root = root
        self.clock = clock
        self.last_restart = float("-inf")

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.event_type not in ("modified", "created", "deleted", "moved"):
            return

        paths = [event.src_path, getattr(event, "dest_path", "")]
        changed = next((p for p in paths if p and is_watched(p, self.root)), None)
        if changed is None:
            return

        now = self.clock()
        if now - self.last_restart < RESTART_DELAY:
            return
        self.last_restart = now

        logger.info(f"🔄 Changed: {Path(changed).name}")
        self.api.restart()


def main():
    api = ApiProcess([sys.executable, ENTRY_POINT, *sys.argv[1:]])
    handler = SourceChangeHandler(api)
    observer = Observer()

    for package in SOURCE_PACKAGES:
        path = PROJECT_ROOT / package
        if path.is_dir():
            observer.schedule(handler, str(path), recursive=True)
            logger.info(f"👁️ Watching {package}/")
    observer.schedule(handler, str(PROJECT_ROOT), recursive=False)

    api.start()
    observer.start()
    logger.info("🔧 Dev mode started, press Ctrl+C to stop")

    try:
        while True:
            time.sleep(1)
            # Упавший API поднимается только после следующего изменения
            if api.exited:
                logger.warning(f"⚠️ API exited with code {api.process.returncode}, waiting for changes")
                api.process = None
    except KeyboardInterrupt:
        logger.info("👋 Stopping dev mode...")
    finally:
        observer.stop()
        api.stop()

    observer.join()


if __name__ == "__main__":
    main()
