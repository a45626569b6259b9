from prometheus_client import Counter, Histogram

# Training metrics
train_runs_total = Counter('nlu_train_runs_total', 'Total training runs', ['status'])
train_duration_seconds = Histogram('nlu_train_duration_seconds', 'Training run duration')
train_stage_duration_seconds = Histogram('nlu_train_stage_duration_seconds', 'Training stage duration', ['stage'])
tooling_calls_total = Counter('nlu_tooling_calls_total', 'Tokenizer/vectorizer calls', ['operation'])

def record_train_run(status: str, duration: float):
    """Record training run metrics"""
    train_runs_total.labels(status=status).inc()
    train_duration_seconds.observe(duration)

def record_stage(stage: str, duration: float):
    """Record training stage metrics"""
    train_stage_duration_seconds.labels(stage=stage).observe(duration)

def record_tooling_call(operation: str):
    """Record a call to the tooling adapter"""
    tooling_calls_total.labels(operation=operation).inc()
