"""Celery configuration for the single-concurrency scheduler queue."""

from kombu import Exchange, Queue

from import_orchestrator.core.log import LOG_FORMAT

# ==============================================================================
# BROKER & BACKEND CONFIGURATION
# ==============================================================================

# Connection settings
broker_connection_retry_on_startup = True
broker_connection_retry = True
broker_connection_max_retries = 10

broker_pool_limit = 10
broker_heartbeat = 30  # Seconds between heartbeats to detect connection issues

result_backend_transport_options = {
    "socket_keepalive": True,
    "socket_timeout": 30,
    "retry_on_timeout": True,
}

result_expires = 3600  # Results expire after 1 hour

# ==============================================================================
# TASK EXECUTION SETTINGS
# ==============================================================================

# A tick is only acknowledged once it finished; a lost worker leaves the row
# PROCESSING for the reaper instead of re-running it
task_acks_late = True
task_reject_on_worker_lost = False
worker_prefetch_multiplier = 1  # Never reserve a second tick while one runs

task_track_started = True

# Serialization
task_serializer = "json"
accept_content = ["json"]
result_serializer = "json"
timezone = "UTC"
enable_utc = True

# Ticks are periodic; a failed one is simply followed by the next
task_max_retries = 0

# ==============================================================================
# QUEUE DEFINITIONS
# ==============================================================================

default_exchange = Exchange("default", type="direct", durable=True)
scheduler_exchange = Exchange("scheduler", type="direct", durable=True)

task_queues = (
    Queue("default", exchange=default_exchange, routing_key="default", durable=True),
    # Run the worker consuming this queue with --concurrency=1
    Queue(
        "scheduler_queue",
        exchange=scheduler_exchange,
        routing_key="scheduler.tick",
        durable=True,
    ),
)

task_default_queue = "default"
task_default_exchange = "default"
task_default_routing_key = "default"

# ==============================================================================
# TASK ROUTING
# ==============================================================================

task_routes = {
    "import_orchestrator.tasks.scheduler_tasks.*": {
        "queue": "scheduler_queue",
        "routing_key": "scheduler.tick",
    },
}

# ==============================================================================
# WORKER CONFIGURATION
# ==============================================================================

# Ticks run in the worker main process, where worker_shutting_down stops the
# scheduler that owns the running job.
worker_pool = "solo"
worker_concurrency = 1

worker_send_task_events = True
worker_log_format = LOG_FORMAT
worker_task_log_format = "[%(asctime)s: %(levelname)s/%(processName)s][%(task_name)s(%(task_id)s)] %(message)s"

# ==============================================================================
# BEAT SCHEDULER
# ==============================================================================

# beat_schedule is set in celery_app from the polling interval
beat_scheduler = "celery.beat:PersistentScheduler"
beat_schedule_filename = "/tmp/celerybeat-schedule"

# ==============================================================================
# SECURITY & ERROR HANDLING
# ==============================================================================

task_ignore_result = True
task_protocol = 2
