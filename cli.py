import argparse
import json
import os
import sys
import uuid as _uuid

from db.connection import get_connection
from db import schema
from db.repos.content_repo import ContentRepo
from db.repos.release_repo import ReleaseShareRepo
from models.release import ReleaseShare, ShareResult
from pipelines.reconcile_contacts import ReconciliationJob
from services.contact_registry import ContactRegistry
from services.content_sharing import HttpContentSharer
from services.deceased_confirmation import DeceasedConfirmationService
from services.errors import AlreadyConfirmedError, NotFoundError, TrustError
from services.identity_resolver import IdentityResolver
from services.release_dispatcher import ReleaseDispatcher
from services.release_orchestrator import ReleaseOrchestrator
from services.trust_index import TrustedRelationshipIndex
from config.settings import get_settings
from utils.logging_setup import init_logging


def _emit(payload) -> None:
	if hasattr(payload, "model_dump"):
		payload = payload.model_dump(mode="json")
	elif isinstance(payload, list):
		payload = [p.model_dump(mode="json") if hasattr(p, "model_dump") else p for p in payload]
	print(json.dumps(payload, indent=2, ensure_ascii=False, default=str))


def _open(args):
	conn = get_connection(args.db)
	schema.bootstrap(conn)
	return conn


class _StubSharer:
	"""Accepts every share without calling out; test runs only."""

	def share(self, content_id: str, recipient_identity: str) -> ShareResult:
		return ShareResult(ok=True, external_id=f"stub-{content_id}-{recipient_identity}")


def _build_sharer():
	settings = get_settings()
	if settings.share_api_url:
		return HttpContentSharer()
	# Stub sharer allowed only in test environment
	if (settings.run_env or "").lower() != "test":
		raise RuntimeError("SHARE_API_URL is required unless RUN_ENV=test")
	return _StubSharer()


def cmd_bootstrap(args):
	_open(args)
	print("Schema ready")


def cmd_register(args):
	conn = _open(args)
	person_id = IdentityResolver(conn).register(args.email, args.name)
	_emit({"person_id": person_id, "email": args.email.strip().lower()})


def cmd_add_contact(args):
	conn = _open(args)
	payload = {
		"email": args.email,
		"full_name": args.name,
		"phone": args.phone,
		"relationship": args.relationship,
		"contact_type": args.type,
		"role": args.role,
		"is_primary": bool(args.primary),
	}
	_emit(ContactRegistry(conn).create(args.owner, payload))


def cmd_promote(args):
	conn = _open(args)
	_emit(ContactRegistry(conn).promote(args.owner, args.contact, args.role, is_primary=bool(args.primary)))


def cmd_demote(args):
	conn = _open(args)
	_emit(ContactRegistry(conn).demote(args.owner, args.contact))


def cmd_delete_contact(args):
	conn = _open(args)
	ContactRegistry(conn).delete(args.owner, args.contact)
	_emit({"deleted": args.contact})


def cmd_set_primary(args):
	conn = _open(args)
	_emit(ContactRegistry(conn).set_primary(args.owner, args.contact))


def cmd_accept_invitation(args):
	conn = _open(args)
	_emit(ContactRegistry(conn).accept_invitation(args.person, args.contact))


def cmd_list_contacts(args):
	conn = _open(args)
	_emit(ContactRegistry(conn).list_contacts(args.owner))


def cmd_check_contact(args):
	conn = _open(args)
	_emit(ContactRegistry(conn).check_contact(args.owner, args.email))


def cmd_trustors(args):
	conn = _open(args)
	index = TrustedRelationshipIndex(conn)
	entries = index.scan(args.email) if args.scan else index.trustors_of(args.email)
	_emit(entries)


def cmd_add_content(args):
	conn = _open(args)
	IdentityResolver(conn).require(args.owner)
	content_id = ContentRepo(conn).add_item(args.owner, args.title, is_private=not args.public)
	_emit({"content_id": content_id, "owner_person_id": args.owner, "is_private": not args.public})


def cmd_assign_content(args):
	conn = _open(args)
	repo = ContentRepo(conn)
	if repo.get(args.content) is None:
		raise NotFoundError("Content not found", content_id=args.content)
	repo.assign(args.content, args.email)
	_emit({"content_id": args.content, "recipient_email": args.email.strip().lower()})


def cmd_confirm_deceased(args):
	conn = _open(args)
	dispatcher = ReleaseDispatcher(args.db, _build_sharer()) if args.release else None
	service = DeceasedConfirmationService(conn, notifier=dispatcher)
	try:
		result = service.confirm(
			args.requester,
			args.requester_email,
			args.target,
			notes=args.notes,
			verification_method=args.method,
		)
		out = result.model_dump(mode="json")
		if dispatcher is not None:
			reports = dispatcher.wait()
			out["release"] = reports[0].model_dump(mode="json") if reports else None
	finally:
		if dispatcher is not None:
			dispatcher.shutdown()
	_emit(out)


def cmd_release(args):
	conn = _open(args)
	orchestrator = ReleaseOrchestrator(conn, _build_sharer(), max_workers=args.concurrency)
	_emit(orchestrator.on_confirmed(args.target))


def cmd_reconcile(args):
	if not os.getenv("RUN_ID"):
		os.environ["RUN_ID"] = _uuid.uuid4().hex
	conn = _open(args)
	_emit(ReconciliationJob(conn).run(owner_person_id=args.owner))


def cmd_reindex(args):
	conn = _open(args)
	total = TrustedRelationshipIndex(conn).rebuild()
	_emit({"index_entries": total})


def cmd_shared_with(args):
	conn = _open(args)
	rows = ReleaseShareRepo(conn).shared_with(args.email)
	_emit([ReleaseShare.model_validate(dict(r)) for r in rows])


def main():
	settings = get_settings()
	init_logging(settings.log_level)
	parser = argparse.ArgumentParser(description="Legacy trust & release CLI")
	parser.add_argument("--db", default=settings.db_path, help="Path to SQLite DB (default from settings)")
	sub = parser.add_subparsers(dest="cmd", required=True)

	p_boot = sub.add_parser("bootstrap", help="Create tables, indexes and views")
	p_boot.set_defaults(func=cmd_bootstrap)

	p_reg = sub.add_parser("register", help="Register a person identity")
	p_reg.add_argument("--email", required=True)
	p_reg.add_argument("--name", default=None, help="Display name")
	p_reg.set_defaults(func=cmd_register)

	p_add = sub.add_parser("add-contact", help="Add a contact for an owner")
	p_add.add_argument("--owner", required=True, help="Owner person id")
	p_add.add_argument("--email", required=True)
	p_add.add_argument("--name", required=True, help="Contact full name")
	p_add.add_argument("--phone", default=None)
	p_add.add_argument("--relationship", default=None, help="Free-text relationship, e.g. sister")
	p_add.add_argument("--type", choices=["regular", "trusted"], default="regular")
	p_add.add_argument("--role", choices=["executor", "legacy_messenger", "guardian"], default=None)
	p_add.add_argument("--primary", action="store_true", help="Mark as the owner's primary trusted contact")
	p_add.set_defaults(func=cmd_add_contact)

	p_pro = sub.add_parser("promote", help="Promote a contact to trusted")
	p_pro.add_argument("--owner", required=True)
	p_pro.add_argument("--contact", required=True, help="Contact record id")
	p_pro.add_argument("--role", required=True, choices=["executor", "legacy_messenger", "guardian"])
	p_pro.add_argument("--primary", action="store_true")
	p_pro.set_defaults(func=cmd_promote)

	p_dem = sub.add_parser("demote", help="Demote a trusted contact to regular")
	p_dem.add_argument("--owner", required=True)
	p_dem.add_argument("--contact", required=True)
	p_dem.set_defaults(func=cmd_demote)

	p_del = sub.add_parser("delete-contact", help="Delete a contact record (history is kept)")
	p_del.add_argument("--owner", required=True)
	p_del.add_argument("--contact", required=True)
	p_del.set_defaults(func=cmd_delete_contact)

	p_pri = sub.add_parser("set-primary", help="Make a trusted contact the primary one")
	p_pri.add_argument("--owner", required=True)
	p_pri.add_argument("--contact", required=True)
	p_pri.set_defaults(func=cmd_set_primary)

	p_acc = sub.add_parser("accept-invitation", help="Accept a registered invitation as the linked contact")
	p_acc.add_argument("--person", required=True, help="Person id of the invited contact")
	p_acc.add_argument("--contact", required=True, help="Contact record id")
	p_acc.set_defaults(func=cmd_accept_invitation)

	p_ls = sub.add_parser("list-contacts", help="List an owner's contacts across both storage shapes")
	p_ls.add_argument("--owner", required=True)
	p_ls.set_defaults(func=cmd_list_contacts)

	p_chk = sub.add_parser("check-contact", help="Show whether an email is already a contact or a user")
	p_chk.add_argument("--owner", required=True)
	p_chk.add_argument("--email", required=True)
	p_chk.set_defaults(func=cmd_check_contact)

	p_tr = sub.add_parser("trustors", help="List accounts that trust an email")
	p_tr.add_argument("--email", required=True)
	p_tr.add_argument("--scan", action="store_true", help="Compute from contact storage instead of the index")
	p_tr.set_defaults(func=cmd_trustors)

	p_cnt = sub.add_parser("add-content", help="Register a content item for an owner")
	p_cnt.add_argument("--owner", required=True)
	p_cnt.add_argument("--title", required=True)
	p_cnt.add_argument("--public", action="store_true", help="Public items are not part of a release")
	p_cnt.set_defaults(func=cmd_add_content)

	p_asg = sub.add_parser("assign-content", help="Assign a content item to a recipient email")
	p_asg.add_argument("--content", required=True)
	p_asg.add_argument("--email", required=True)
	p_asg.set_defaults(func=cmd_assign_content)

	p_cd = sub.add_parser("confirm-deceased", help="Confirm an owner's death as a trusted contact")
	p_cd.add_argument("--requester", required=True, help="Requester person id")
	p_cd.add_argument("--requester-email", required=True)
	p_cd.add_argument("--target", required=True, help="Target person id")
	p_cd.add_argument("--notes", default=None)
	p_cd.add_argument("--method", default=None, help="Verification method (default from settings)")
	p_cd.add_argument("--release", action="store_true", help="Run the content release right after confirming")
	p_cd.set_defaults(func=cmd_confirm_deceased)

	p_rel = sub.add_parser("release", help="Run (or retry) the content release for a confirmed owner")
	p_rel.add_argument("--target", required=True)
	p_rel.add_argument("--concurrency", type=int, default=None, help="Parallel share calls (default from settings)")
	p_rel.set_defaults(func=cmd_release)

	p_rec = sub.add_parser("reconcile", help="Link contacts to identities that registered later")
	p_rec.add_argument("--owner", default=None, help="Limit to one owner")
	p_rec.set_defaults(func=cmd_reconcile)

	p_idx = sub.add_parser("reindex", help="Rebuild the trusted-relationship index")
	p_idx.set_defaults(func=cmd_reindex)

	p_sw = sub.add_parser("shared-with", help="List release shares received by an email")
	p_sw.add_argument("--email", required=True)
	p_sw.set_defaults(func=cmd_shared_with)

	args = parser.parse_args()
	try:
		args.func(args)
	except AlreadyConfirmedError as exc:
		_emit(exc.to_dict())
		sys.exit(2)
	except TrustError as exc:
		_emit(exc.to_dict())
		sys.exit(1)


if __name__ == "__main__":
	main()
