"""Read-only query selectors."""

from contracts_kernel.selectors.contract_selector import ContractSelector, ContractStatistics

__all__ = ["ContractSelector", "ContractStatistics"]
