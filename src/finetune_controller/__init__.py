# Copyright (c) Syntropy Systems
"""
finetune-controller - Experiment reconciliation for fine-tuning jobs.

Declare an experiment, let the controller materialize and track its jobs.
"""

from finetune_controller.reconciler import Reconciler, Request, Result

__version__ = "0.1.0"
__all__ = ["Reconciler", "Request", "Result", "__version__"]
