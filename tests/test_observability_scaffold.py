def test_observability_modules_exist():
    import app.obs.context as ctx
    import app.obs.logger as log
    import app.obs.metrics as met
    import app.obs.middleware as mid

    assert hasattr(ctx, "request_id_var")
    assert hasattr(ctx, "sender_var")
    assert hasattr(log, "log_event")
    assert hasattr(met, "record_timing")
    assert hasattr(met, "inc_counter")
    assert hasattr(met, "set_gauge")
    assert hasattr(met, "get_metrics_snapshot")
    assert hasattr(mid, "ObservabilityMiddleware")


def test_bound_sender_is_logged_redacted(capsys):
    from app.obs.context import bind_sender, clear_context
    from app.obs.logger import log_event

    bind_sender("+15550009999", "SM123")
    try:
        log_event("step")
    finally:
        clear_context()
    out = capsys.readouterr().out
    assert '"sender":"***9999"' in out
    assert '"message_sid":"SM123"' in out
