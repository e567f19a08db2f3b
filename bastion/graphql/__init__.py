"""GraphQL query cost policy."""

from bastion.graphql.policy import QueryCostCalculator, is_build_client

__all__ = ["QueryCostCalculator", "is_build_client"]
