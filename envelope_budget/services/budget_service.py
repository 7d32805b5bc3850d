import structlog

from envelope_budget.database.db_manager import DatabaseManager
from envelope_budget.database.budget_dao import BudgetDAO
from envelope_budget.models.actor import Actor
from envelope_budget.models.budget import BudgetTemplate, Envelope, EnvelopeGroup
from envelope_budget.services.access import require_admin
from envelope_budget.services.errors import IntegrityViolation
from envelope_budget.services.validation import check_cents, clean_name
from envelope_budget.utils.constants import STATUS_ACTIVE, STATUS_ARCHIVED

logger = structlog.get_logger(__name__)


class BudgetService:
    """Budget templates -> envelope groups -> envelopes.

    At most one template is active. Groups and envelopes are appended with
    ``sort_order = max + 1`` inside the write transaction; readers order by
    ``(sort_order, id)`` so a tie can never reorder existing rows.
    """

    def __init__(self, db: DatabaseManager, budget_dao: BudgetDAO):
        self._db = db
        self._dao = budget_dao

    # ── Templates ────────────────────────────────────────────────────────────

    def get_templates(self) -> list[BudgetTemplate]:
        return self._dao.get_templates()

    def get_template(self, template_id: int) -> BudgetTemplate | None:
        return self._dao.get_template(template_id)

    def get_active_template(self) -> BudgetTemplate | None:
        return self._dao.get_active_template()

    def get_active_budget(self) -> BudgetTemplate | None:
        """Active template with its groups and non-archived envelopes filled in."""
        template = self._dao.get_active_template()
        if template is None:
            return None
        template.groups = self.get_groups(template.id)
        return template

    def create_template(self, actor: Actor, name: str, is_active: bool = False) -> BudgetTemplate:
        require_admin(actor)
        name = clean_name(name, label="Template name")
        with self._db.transaction():
            template = self._dao.create_template(name)
            if is_active:
                self._dao.deactivate_all()
                self._dao.set_active(template.id)
                template = self._dao.get_template(template.id)
        logger.info("template_created", template_id=template.id, is_active=is_active,
                    by=actor.user_id)
        return template

    def rename_template(self, actor: Actor, template_id: int, name: str) -> BudgetTemplate:
        require_admin(actor)
        name = clean_name(name, label="Template name")
        with self._db.transaction():
            self._require_template(template_id)
            return self._dao.rename_template(template_id, name)

    def activate_template(self, actor: Actor, template_id: int) -> BudgetTemplate:
        """Deactivate every template and activate this one, all or nothing."""
        require_admin(actor)
        with self._db.transaction():
            self._require_template(template_id)
            self._dao.deactivate_all()
            self._dao.set_active(template_id)
            if self._dao.count_active_templates() != 1:
                raise IntegrityViolation("Template activation left more than one template active.")
            template = self._dao.get_template(template_id)
        logger.info("template_activated", template_id=template_id, by=actor.user_id)
        return template

    def delete_template(self, actor: Actor, template_id: int):
        """Hard delete; groups, envelopes and income categories go with it."""
        require_admin(actor)
        with self._db.transaction():
            self._require_template(template_id)
            self._dao.delete_template(template_id)
        logger.info("template_deleted", template_id=template_id, by=actor.user_id)

    # ── Groups ───────────────────────────────────────────────────────────────

    def get_groups(self, template_id: int, include_archived: bool = False) -> list[EnvelopeGroup]:
        groups = self._dao.get_groups(template_id)
        for group in groups:
            group.envelopes = self._dao.get_envelopes(group.id, include_archived)
        return groups

    def create_group(self, actor: Actor, template_id: int, name: str) -> EnvelopeGroup:
        require_admin(actor)
        name = clean_name(name, label="Group name")
        with self._db.transaction():
            self._require_template(template_id)
            group = self._dao.create_group(template_id, name)
        logger.info("group_created", group_id=group.id, template_id=template_id,
                    sort_order=group.sort_order)
        return group

    def rename_group(self, actor: Actor, group_id: int, name: str) -> EnvelopeGroup:
        require_admin(actor)
        name = clean_name(name, label="Group name")
        with self._db.transaction():
            self._require_group(group_id)
            return self._dao.rename_group(group_id, name)

    def delete_group(self, actor: Actor, group_id: int):
        require_admin(actor)
        with self._db.transaction():
            self._require_group(group_id)
            self._dao.delete_group(group_id)
        logger.info("group_deleted", group_id=group_id, by=actor.user_id)

    # ── Envelopes ────────────────────────────────────────────────────────────

    def get_envelope(self, envelope_id: int) -> Envelope | None:
        return self._dao.get_envelope(envelope_id)

    def active_envelopes(self, template_id: int | None = None) -> list[Envelope]:
        """Non-archived envelopes of a template (default: the active one)."""
        if template_id is None:
            template = self._dao.get_active_template()
            if template is None:
                return []
            template_id = template.id
        return self._dao.get_active_envelopes_for_template(template_id)

    def create_envelope(
        self, actor: Actor, group_id: int, name: str, budget_amount_cents: int
    ) -> Envelope:
        require_admin(actor)
        name = clean_name(name, label="Envelope name")
        check_cents(budget_amount_cents, "budget_amount_cents", allow_zero=True)
        with self._db.transaction():
            self._require_group(group_id)
            envelope = self._dao.create_envelope(group_id, name, budget_amount_cents)
        logger.info("envelope_created", envelope_id=envelope.id, group_id=group_id,
                    sort_order=envelope.sort_order)
        return envelope

    def update_envelope(
        self,
        actor: Actor,
        envelope_id: int,
        name: str | None = None,
        budget_amount_cents: int | None = None,
    ) -> Envelope:
        require_admin(actor)
        if name is not None:
            name = clean_name(name, label="Envelope name")
        if budget_amount_cents is not None:
            check_cents(budget_amount_cents, "budget_amount_cents", allow_zero=True)
        with self._db.transaction():
            current = self._require_envelope(envelope_id)
            envelope = self._dao.update_envelope(
                envelope_id,
                name if name is not None else current.name,
                budget_amount_cents if budget_amount_cents is not None
                else current.budget_amount_cents,
            )
        logger.info("envelope_updated", envelope_id=envelope_id, by=actor.user_id)
        return envelope

    def archive_envelope(self, actor: Actor, envelope_id: int) -> Envelope:
        """Soft delete: hidden from active views, still referenced by old transactions."""
        return self._set_envelope_status(actor, envelope_id, STATUS_ARCHIVED)

    def restore_envelope(self, actor: Actor, envelope_id: int) -> Envelope:
        return self._set_envelope_status(actor, envelope_id, STATUS_ACTIVE)

    # ── Helpers ──────────────────────────────────────────────────────────────

    def _set_envelope_status(self, actor: Actor, envelope_id: int, status: str) -> Envelope:
        require_admin(actor)
        with self._db.transaction():
            self._require_envelope(envelope_id)
            self._dao.set_envelope_status(envelope_id, status)
            envelope = self._dao.get_envelope(envelope_id)
        logger.info("envelope_status_changed", envelope_id=envelope_id, status=status,
                    by=actor.user_id)
        return envelope

    def _require_template(self, template_id: int) -> BudgetTemplate:
        template = self._dao.get_template(template_id)
        if template is None:
            raise IntegrityViolation(f"Budget template {template_id} not found.")
        return template

    def _require_group(self, group_id: int) -> EnvelopeGroup:
        group = self._dao.get_group(group_id)
        if group is None:
            raise IntegrityViolation(f"Envelope group {group_id} not found.")
        return group

    def _require_envelope(self, envelope_id: int) -> Envelope:
        envelope = self._dao.get_envelope(envelope_id)
        if envelope is None:
            raise IntegrityViolation(f"Envelope {envelope_id} not found.")
        return envelope
