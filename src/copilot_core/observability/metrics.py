"""Metrics for the chat core.

Defines OpenTelemetry metrics for:
- Chat: Request cycles, streamed chunks, errors
- Tools: Execution counts, latency, failures
- Agent loop: Approvals and iteration limits
"""

from opentelemetry import metrics

meter = metrics.get_meter("copilot_core")

# =============================================================================
# CHAT METRICS
# =============================================================================

chat_requests = meter.create_counter(
    name="copilot_core.chat.requests",
    description="Total chat request cycles sent to the runtime",
    unit="1",
)

chat_errors = meter.create_counter(
    name="copilot_core.chat.errors",
    description="Total chat request cycles that ended in an error",
    unit="1",
)

chat_stream_chunks = meter.create_counter(
    name="copilot_core.chat.stream_chunks",
    description="Total stream chunks received from the runtime",
    unit="1",
)

chat_request_time = meter.create_histogram(
    name="copilot_core.chat.request_time",
    description="Duration of a request cycle (send to last chunk)",
    unit="ms",
)

# =============================================================================
# TOOL METRICS
# =============================================================================

tool_execution_count = meter.create_counter(
    name="copilot_core.tools.execution_count",
    description="Total tool executions",
    unit="1",
)

tool_execution_errors = meter.create_counter(
    name="copilot_core.tools.execution_errors",
    description="Total failed or rejected tool executions",
    unit="1",
)

tool_execution_time = meter.create_histogram(
    name="copilot_core.tools.execution_time",
    description="Time to execute a tool handler",
    unit="ms",
)

# =============================================================================
# AGENT LOOP METRICS
# =============================================================================

tool_approvals_requested = meter.create_counter(
    name="copilot_core.agent.approvals_requested",
    description="Total tool executions that waited for user approval",
    unit="1",
)

iteration_limit_hits = meter.create_counter(
    name="copilot_core.agent.iteration_limit_hits",
    description="Total tool turns blocked by the iteration limit",
    unit="1",
)
