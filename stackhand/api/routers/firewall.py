"""Firewall rules."""

from fastapi import APIRouter, Depends, status

from stackhand.lifecycle.service import LifecycleService
from stackhand.models import Server, ServerFirewallRule

from ..dependencies import get_lifecycle_service, get_owned_server
from ..schemas import FirewallRuleCreate, FirewallRuleRead

router = APIRouter(prefix="/servers/{server_id}/firewall/rules", tags=["firewall"])

ACCEPTED = status.HTTP_202_ACCEPTED


@router.post("/", response_model=FirewallRuleRead, status_code=ACCEPTED)
async def add_rule(
    rule_in: FirewallRuleCreate,
    server: Server = Depends(get_owned_server),
    service: LifecycleService = Depends(get_lifecycle_service),
) -> ServerFirewallRule:
    return await service.add_firewall_rule(server.id, **rule_in.model_dump())


@router.delete("/{rule_id}", response_model=FirewallRuleRead, status_code=ACCEPTED)
async def remove_rule(
    rule_id: int,
    server: Server = Depends(get_owned_server),
    service: LifecycleService = Depends(get_lifecycle_service),
) -> ServerFirewallRule:
    record = await service.get_record(ServerFirewallRule, server.id, rule_id)
    return await service.request_removal(record)


@router.post("/{rule_id}/retry", response_model=FirewallRuleRead, status_code=ACCEPTED)
async def retry_rule(
    rule_id: int,
    server: Server = Depends(get_owned_server),
    service: LifecycleService = Depends(get_lifecycle_service),
) -> ServerFirewallRule:
    record = await service.get_record(ServerFirewallRule, server.id, rule_id)
    return await service.retry(record)
