from fork_lp.core.adapters.BaseAdapter import BaseAdapter
from fork_lp.core.adapters.decorators import StepResult, step_result

__all__ = ["BaseAdapter", "StepResult", "step_result"]
