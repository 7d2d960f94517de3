"""
Spendwise - Background jobs

Sweeps run by the scheduler (and on demand from the CLI or API). Each sweep
processes its candidates one at a time; a failing item is logged and counted
and never stops the rest. Every sweep returns a summary dict of counters.

    process_recurring_transactions -> {processed, errors}
    check_budget_alerts            -> {checked, alerts, errors}
    reset_expired_budgets          -> {reset, errors}

Author: Spendwise contributors
License: MIT
"""

import logging

from .budgets import progress_percentage

logger = logging.getLogger(__name__)


def process_recurring_transactions(engine, now=None):
    """
    Materialize every due recurring template once and advance it.

    A template is due when next_occurrence <= now and its end_date is unset or
    not yet passed. Each one yields at most one instance per run, dated at its
    next_occurrence. Expense instances are also applied to the owner's budget.

    Returns:
        dict: {"processed": instances created, "errors": templates that failed}
    """
    now = engine.resolve_now(now)
    processed = 0
    errors = 0

    try:
        closed = engine.close_ended_templates(now)
        if closed:
            logger.info("[JOBS] Closed %d recurring templates past their end date", closed)
    except Exception:
        logger.exception("[JOBS] Failed to close ended recurring templates")
        errors += 1

    templates = engine.get_due_templates(now)
    logger.info("[JOBS] Processing %d due recurring templates", len(templates))

    for template in templates:
        try:
            instance = engine.materialize_occurrence(template, now)
        except Exception:
            errors += 1
            logger.exception("[JOBS] Failed to process recurring template %s", template["transaction_id"])
            continue

        if instance is None:
            continue
        processed += 1
        engine.record_ledger_effects(instance, 1, now=now)

    logger.info("[JOBS] Recurring transactions: %d processed, %d errors", processed, errors)
    return {"processed": processed, "errors": errors}


def check_budget_alerts(engine, notifier=None, now=None):
    """
    Recompute progress for open budgets and alert the ones past their threshold.

    Progress is rebuilt from the budget's expense transactions and persisted
    before the threshold check. alert_sent is only set after the notifier
    reports success.

    Returns:
        dict: {"checked", "alerts", "errors"}
    """
    now = engine.resolve_now(now)
    checked = 0
    alerts = 0
    errors = 0

    for budget in engine.get_alert_candidates(now):
        checked += 1
        try:
            budget["progress"] = engine.recompute_progress(budget)
            if progress_percentage(budget) < budget["alert_threshold"]:
                continue

            if engine.send_budget_alert(budget, notifier=notifier):
                engine.mark_alert_sent(budget["budget_id"])
                alerts += 1
                logger.info("[JOBS] Alert sent for budget %s (%s)", budget["budget_id"], budget["category"])
            else:
                errors += 1
        except Exception:
            errors += 1
            logger.exception("[JOBS] Failed to evaluate budget %s", budget["budget_id"])

    logger.info("[JOBS] Budget alerts: %d checked, %d sent, %d errors", checked, alerts, errors)
    return {"checked": checked, "alerts": alerts, "errors": errors}


def reset_expired_budgets(engine, now=None):
    """
    Roll every expired spending budget into a new period starting now.

    progress returns to 0, alert_sent to false, and end_date moves to one
    period after the new start. Savings goals are left alone.

    Returns:
        dict: {"reset", "errors"}
    """
    now = engine.resolve_now(now)
    reset = 0
    errors = 0

    for budget in engine.get_expired_budgets(now):
        try:
            engine.reset_budget(budget, now)
            reset += 1
        except Exception:
            errors += 1
            logger.exception("[JOBS] Failed to reset budget %s", budget["budget_id"])

    logger.info("[JOBS] Budget reset: %d reset, %d errors", reset, errors)
    return {"reset": reset, "errors": errors}
