"""
Workflow Scheduler Service

Cron activation, time-boxed test mode and on-demand runs of workflows on
top of the workflow execution engine.
"""
