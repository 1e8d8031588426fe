from __future__ import annotations

import logging
import threading
import uuid
from typing import Any, Optional

from flask import Flask, jsonify
from werkzeug.serving import BaseWSGIServer, make_server

from topo.reconciler import ReconciliationLoop
from topo.state import ResourceCatalog, ResourceType

logger = logging.getLogger(__name__)


def create_app(catalog: ResourceCatalog, loop: Optional[ReconciliationLoop] = None) -> Flask:
	app = Flask(__name__)
	app.config['topo_catalog'] = catalog
	app.config['topo_loop'] = loop

	@app.get("/healthz")
	def healthz() -> Any:
		return jsonify({
			"status": "ok",
			"cycles": loop.cycles if loop else 0,
			"resources": len(catalog),
		})

	@app.get("/topology")
	def topology() -> Any:
		coordinators = catalog.of_type(ResourceType.COORDINATOR)
		if not coordinators:
			return jsonify({"error": "no coordinator resource"}), 503
		root_id = uuid.UUID(coordinators[0].descriptor.uuid)
		return jsonify({"topology": catalog.topology_snapshot(root_id)})

	@app.get("/resources")
	def list_resources() -> Any:
		return jsonify({"resources": catalog.snapshot()})

	@app.get("/resources/<resource_id>")
	def get_resource(resource_id: str) -> Any:
		try:
			rid = uuid.UUID(resource_id)
		except ValueError:
			return jsonify({"error": f"invalid resource id: {resource_id}"}), 400
		status = catalog.status_snapshot(rid)
		if status is None:
			return jsonify({"error": f"resource {resource_id} not found"}), 404
		return jsonify(status)

	@app.get("/workloads/bound")
	def bound_workloads() -> Any:
		return jsonify({"bound": loop.bound_workloads() if loop else []})

	return app


class StatusServer:
	"""Serves the status app on a daemon thread."""

	def __init__(self, app: Flask, host: str, port: int) -> None:
		self.host = host
		self.port = port
		self._server: BaseWSGIServer = make_server(host, port, app, threaded=True)
		self._thread: Optional[threading.Thread] = None

	def start(self) -> None:
		self._thread = threading.Thread(target=self._server.serve_forever, name="topo-status-api", daemon=True)
		self._thread.start()
		logger.info(f"Status API listening on {self.host}:{self.port}")

	def stop(self) -> None:
		self._server.shutdown()
		if self._thread:
			self._thread.join(timeout=5.0)
			self._thread = None
