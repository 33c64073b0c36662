"""Polling engine that claims Ctrlplane jobs and triggers them locally.

Each cycle validates configuration, makes sure the agent is registered,
reconciles the jobs this process already triggered, and then claims new ones.
Finished executions can also be reported right away through the completion
listener. The two paths race on purpose: whichever reports first removes the
job from the active-job table, and the other finds it gone.

Known gap: the active-job table is kept in memory only. Jobs triggered before
a restart are not reconciled afterwards. Their status is reported only if the
completion listener fired before the restart.
"""
