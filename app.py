from __future__ import annotations

import argparse
import logging
import signal
import sys
from typing import List, Optional, Tuple

from kubernetes.config import ConfigException

from topo.api import StatusServer, create_app
from topo.config import ReconcilerConfig, load_config, parse_listen_uri
from topo.errors import ConfigError, SchedulerError
from topo.inventory import ClusterInventoryClient, KubeInventoryClient, load_kube_config
from topo.log_config import configure_logging
from topo.placement import FirstNodePolicy
from topo.reconciler import ReconciliationLoop
from topo.scheduler import HttpSchedulerFacade, LocalSchedulerFacade, SchedulerContext, SchedulerFacade
from topo.state import ResourceCatalog
from topo.topology import TopologyBuilder

logger = logging.getLogger(__name__)


def build_scheduler(cfg: ReconcilerConfig, context: SchedulerContext) -> SchedulerFacade:
	"""Construct the scheduler facade; raises SchedulerError if it cannot be reached."""
	if cfg.scheduler_url:
		scheduler = HttpSchedulerFacade(context, cfg.scheduler_url, timeout_s=cfg.scheduler_timeout_s)
		scheduler.connect()
		return scheduler
	return LocalSchedulerFacade(context)


def build_inventory(cfg: ReconcilerConfig) -> ClusterInventoryClient:
	load_kube_config(cfg.kubeconfig or None)
	return KubeInventoryClient(
		namespace=cfg.namespace,
		scheduler_name=cfg.scheduler_name,
		only_unbound_pods=cfg.only_unbound_pods,
	)


def build_reconciler(
	cfg: ReconcilerConfig,
	inventory: Optional[ClusterInventoryClient] = None,
) -> Tuple[ReconciliationLoop, ResourceCatalog]:
	"""One-time setup: coordinator resource, scheduler, inventory, loop."""
	catalog = ResourceCatalog()
	builder = TopologyBuilder(catalog)
	coordinator = builder.create_top_level_resource()

	context = SchedulerContext(resource_map=catalog, topology_root=coordinator.topology_node)
	scheduler = build_scheduler(cfg, context)
	logger.info(f"Scheduler instantiated: {scheduler.describe()}")

	if inventory is None:
		inventory = build_inventory(cfg)

	loop = ReconciliationLoop(
		catalog,
		builder,
		coordinator,
		scheduler,
		inventory,
		policy=FirstNodePolicy(),
		poll_interval_s=cfg.poll_interval_s,
		track_bound_workloads=cfg.track_bound_workloads,
	)
	return loop, catalog


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
	parser = argparse.ArgumentParser(description="Reconcile cluster nodes and pods with the scheduler topology")
	parser.add_argument("--config", help="YAML config file")
	parser.add_argument("--listen-uri", dest="listen_uri", help="Bind address for the status API (host:port)")
	parser.add_argument("--poll-interval", dest="poll_interval_s", type=float, help="Seconds between cycles")
	parser.add_argument("--kubeconfig", help="Path to kubeconfig (in-cluster config if omitted)")
	parser.add_argument("--namespace", help="Only watch pods in this namespace")
	parser.add_argument("--scheduler-name", dest="scheduler_name", help="Only place pods with this schedulerName")
	parser.add_argument("--only-unbound-pods", dest="only_unbound_pods", action="store_true", default=None)
	parser.add_argument("--scheduler-url", dest="scheduler_url", help="External scheduler service URL")
	parser.add_argument(
		"--rebind-workloads",
		dest="track_bound_workloads",
		action="store_false",
		default=None,
		help="Re-issue bindings every cycle, even for pods already bound",
	)
	parser.add_argument("--log-level", dest="log_level")
	parser.add_argument("--log-format", dest="log_format", choices=["text", "json"])
	return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> int:
	args = parse_args(argv)
	overrides = {k: v for k, v in vars(args).items() if k != "config"}

	try:
		cfg = load_config(args.config).with_overrides(**overrides)
	except ConfigError as e:
		print(f"Invalid configuration: {e}", file=sys.stderr)
		return 1

	configure_logging(cfg.log_level, cfg.log_format)

	try:
		loop, catalog = build_reconciler(cfg)
	except SchedulerError as e:
		logger.error(f"Scheduler setup failed: {e}")
		return 1
	except (ConfigException, OSError) as e:
		logger.error(f"Kubernetes client setup failed: {e}")
		return 1

	server = None
	if cfg.listen_uri:
		host, port = parse_listen_uri(cfg.listen_uri)
		try:
			server = StatusServer(create_app(catalog, loop), host, port)
		except OSError as e:
			logger.error(f"Could not bind status API to {cfg.listen_uri}: {e}")
			return 1
		server.start()

	def _shutdown(signum, frame) -> None:
		logger.info(f"Received signal {signum}, shutting down")
		loop.stop()

	signal.signal(signal.SIGINT, _shutdown)
	signal.signal(signal.SIGTERM, _shutdown)

	try:
		loop.run_forever()
	finally:
		if server:
			server.stop()
	return 0


if __name__ == "__main__":
	sys.exit(main())
