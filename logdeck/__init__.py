"""
logdeck — terminal dashboard for CloudWatch Logs

Browse log groups in a sidebar and open up to four log groups side by side.
Each pane is served by its own pair of background workers: one for paged
fetches and one for live tailing.

Usage:    logdeck [--profile NAME] [--region REGION] [--prefix PREFIX]
          python -m logdeck
"""

__version__ = '0.3.0'
