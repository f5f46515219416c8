"""Client-side run driver.

The PollingEngine owns a RunState and feeds it from status snapshots; hil
holds the approval-gate helpers it uses.
"""
