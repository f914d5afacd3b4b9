"""app.integrations — outbound clients for the stage review API.

Code that drives the workflow from outside the Flask process (scripts,
CLIs, other services) goes through this package, never via bare
`requests` calls.

  workflow_client.WorkflowClient        — REST client with local workflow gates
  notification_feed.NotificationFeed    — unread-count subscription interface
  notification_feed.PollingNotificationFeed — 30 s polling fallback
"""
