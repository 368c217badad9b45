from hirebit.core.notifier import FALLBACK_COMPANY_NAME, FALLBACK_JOB_TITLE, DecisionNotifier
from hirebit.mail.templates import render_decision_email
from hirebit.mail.transport import SMTPTransport, build_message
from hirebit.types import Decision, DecisionNotice, EmailAttachment, OutboundEmail

CONTEXT = {
    "candidate_name": "Ada",
    "company_name": "Acme",
    "job_title": "Backend Engineer",
    "hr_email": "hr@acme.test",
    "interview_link": None,
}


def test_decision_subjects_per_status() -> None:
    assert render_decision_email(Decision.SHORTLIST, CONTEXT)[0] == (
        "Congratulations! You've been shortlisted for Backend Engineer"
    )
    assert render_decision_email(Decision.FLAG, CONTEXT)[0] == "Application Received - Backend Engineer"
    assert render_decision_email(Decision.REJECT, CONTEXT)[0] == "Application Update - Backend Engineer"


def test_review_email_never_mentions_flagging() -> None:
    _, html, text = render_decision_email(Decision.FLAG, CONTEXT)
    assert "flag" not in html.lower()
    assert "flag" not in text.lower()
    assert "under review" in text


def test_templates_escape_html_in_candidate_values() -> None:
    _, html, text = render_decision_email(Decision.REJECT, {**CONTEXT, "candidate_name": "<b>Eve</b>"})
    assert "&lt;b&gt;Eve&lt;/b&gt;" in html
    assert "Hi <b>Eve</b>," in text


def test_notifier_uses_job_context_and_meeting_link(db, make_job, transport, settings) -> None:
    job = make_job(meeting_link="https://meet.example/abc")
    notifier = DecisionNotifier(db, transport=transport, settings=settings)

    assert notifier.notify(DecisionNotice(to="ada@x.io", candidate_name="Ada", status=Decision.SHORTLIST, job_posting_id=job.id))

    message = transport.sent[0]
    assert message.to == "ada@x.io"
    assert message.reply_to == "hr@acme.test"
    assert "https://meet.example/abc" in message.text
    assert "Acme" in message.text


def test_notifier_only_links_interviews_for_shortlist(db, make_job, transport, settings) -> None:
    job = make_job(meeting_link="https://meet.example/abc")
    notifier = DecisionNotifier(db, transport=transport, settings=settings)
    notifier.notify(DecisionNotice(to="bo@x.io", status=Decision.REJECT, job_posting_id=job.id))

    assert "meet.example" not in transport.sent[0].text
    assert "meet.example" not in (transport.sent[0].html or "")


def test_notifier_falls_back_to_placeholders_for_unknown_job(db, transport, settings) -> None:
    notifier = DecisionNotifier(db, transport=transport, settings=settings)
    notifier.notify(DecisionNotice(to="cy@x.io", status=Decision.FLAG, job_posting_id="missing"))

    message = transport.sent[0]
    assert FALLBACK_JOB_TITLE in message.subject
    assert FALLBACK_COMPANY_NAME in message.text
    assert message.reply_to == settings.default_hr_email


def test_notifier_swallows_transport_errors(db, failing_transport, settings) -> None:
    notifier = DecisionNotifier(db, transport=failing_transport, settings=settings)
    assert notifier.notify(DecisionNotice(to="dee@x.io", status=Decision.FLAG)) is False


def test_smtp_transport_without_host_drops_mail(settings) -> None:
    message = OutboundEmail(to="a@x.io", subject="s", text="t")
    assert SMTPTransport(settings).send(message) is False


def test_build_message_includes_alternative_and_attachment() -> None:
    message = OutboundEmail(
        to="hr@acme.test",
        subject="Report",
        text="plain",
        html="<p>html</p>",
        reply_to="reply@acme.test",
        attachments=[EmailAttachment(filename="r.pdf", content=b"%PDF-1.4", content_type="application/pdf")],
    )
    email = build_message(message, sender="no-reply@hirebit.local", sender_name="Hirebit")

    assert email["Reply-To"] == "reply@acme.test"
    assert "Hirebit" in email["From"]
    attachments = list(email.iter_attachments())
    assert [part.get_filename() for part in attachments] == ["r.pdf"]
    assert email.get_body(preferencelist=("html",)).get_content().strip() == "<p>html</p>"
