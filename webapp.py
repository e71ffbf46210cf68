"""Flask backend exposing job submission and queue status for the scraper."""
from __future__ import annotations

import asyncio
import logging
import os
import threading
from typing import Any, Callable, Coroutine, Dict, List, Optional

from flask import Flask, Response, current_app, jsonify, request

from scraper_core import Job, QueueScheduler, ScraperConfig, Source, build_scheduler, create_config_from_env
from scraper_core.reporter import build_report

LOGGER = logging.getLogger(__name__)
logging.basicConfig(level=logging.INFO)

SUBMIT_TIMEOUT = 10.0


class ScraperRuntime:
    """Own a background event loop that runs the queue scheduler.

    Flask handlers run in their own threads; every call into the scheduler is
    marshalled onto the loop with :func:`asyncio.run_coroutine_threadsafe`.
    """

    def __init__(
        self,
        config: ScraperConfig,
        scheduler_factory: Callable[[ScraperConfig], QueueScheduler] = build_scheduler,
    ) -> None:
        self.config = config
        self.scheduler_factory = scheduler_factory
        self.scheduler: Optional[QueueScheduler] = None
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._thread: Optional[threading.Thread] = None
        self._start_lock = threading.Lock()

    def _call(self, coroutine: Coroutine[Any, Any, Any], timeout: float = SUBMIT_TIMEOUT) -> Any:
        assert self._loop is not None
        future = asyncio.run_coroutine_threadsafe(coroutine, self._loop)
        return future.result(timeout=timeout)

    async def _start_scheduler(self) -> None:
        self.scheduler = self.scheduler_factory(self.config)
        await self.scheduler.start()

    def ensure_started(self) -> None:
        with self._start_lock:
            if self._thread is not None:
                return
            loop = asyncio.new_event_loop()
            thread = threading.Thread(target=loop.run_forever, name="scraper-loop", daemon=True)
            thread.start()
            self._loop = loop
            self._thread = thread
            self._call(self._start_scheduler())
            LOGGER.info("Scraper runtime started")

    def submit(self, source: Source, url: str, is_new: bool) -> Job:
        self.ensure_started()
        assert self.scheduler is not None
        return self._call(self.scheduler.enqueue(source, url, is_new=is_new))

    async def _snapshot(self, fn: Callable[[], Any]) -> Any:
        return fn()

    def get_job(self, job_id: str) -> Optional[Job]:
        self.ensure_started()
        return self._call(self._snapshot(lambda: self.scheduler.get_job(job_id)))

    def jobs(self) -> List[Job]:
        self.ensure_started()
        return self._call(self._snapshot(self.scheduler.jobs))

    def stats(self) -> Dict[str, Any]:
        self.ensure_started()
        return self._call(self._snapshot(self.scheduler.stats))

    def shutdown(self, timeout: float = 30.0) -> None:
        with self._start_lock:
            if self._thread is None or self._loop is None:
                return
            try:
                if self.scheduler is not None:
                    self._call(self.scheduler.stop(), timeout=timeout)
            finally:
                self._loop.call_soon_threadsafe(self._loop.stop)
                self._thread.join(timeout=timeout)
                self._loop.close()
                self._thread = None
                self._loop = None
            LOGGER.info("Scraper runtime stopped")


def _runtime() -> ScraperRuntime:
    return current_app.config["SCRAPER_RUNTIME"]


def _parse_source(payload: Dict[str, Any], url: str) -> Source:
    raw_source = payload.get("source")
    if raw_source:
        return Source(str(raw_source).strip().lower())
    return Source.from_url(url)


def create_app(runtime: Optional[ScraperRuntime] = None) -> Flask:
    app = Flask(__name__)
    app.config["SCRAPER_RUNTIME"] = runtime or ScraperRuntime(create_config_from_env())

    @app.route("/api/enqueue", methods=["POST"])
    def enqueue():
        payload = request.get_json(force=True, silent=True) or {}
        url = str(payload.get("url") or "").strip()
        if not url:
            return jsonify({"error": "url required"}), 400
        try:
            source = _parse_source(payload, url)
        except ValueError as exc:
            return jsonify({"error": str(exc)}), 400
        job = _runtime().submit(source, url, bool(payload.get("isNew", False)))
        return jsonify({"jobId": job.id, "queue": job.queue}), 202

    @app.route("/api/jobs/<job_id>")
    def job_status(job_id: str):
        job = _runtime().get_job(job_id)
        if not job:
            return jsonify({"error": "unknown job"}), 404
        return jsonify(job.to_dict())

    @app.route("/api/queues")
    def queue_stats():
        return jsonify(_runtime().stats())

    @app.route("/report")
    def report() -> Response:
        runtime = _runtime()
        text = build_report(runtime.jobs(), runtime.stats().get("pool"))
        return Response(text, mimetype="text/plain")

    return app


if __name__ == "__main__":
    application = create_app()
    try:
        application.run(host=os.getenv("SCRAPER_HOST", "127.0.0.1"), port=int(os.getenv("SCRAPER_PORT", "5000")))
    finally:
        application.config["SCRAPER_RUNTIME"].shutdown()
