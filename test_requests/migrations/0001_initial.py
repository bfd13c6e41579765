from django.conf import settings
from django.db import migrations, models
import django.db.models.deletion


STATUS_CHOICES = [
    ("Pending", "Pending"),
    ("Assigned", "Assigned"),
    ("Sample_Collection_Scheduled", "Sample Collection Scheduled"),
    ("Sample_Collected", "Sample Collected"),
    ("In_Lab_Testing", "In Lab Testing"),
    ("Testing_Completed", "Testing Completed"),
    ("Report_Generated", "Report Generated"),
    ("Report_Sent", "Report Sent"),
    ("Completed", "Completed"),
    ("Cancelled", "Cancelled"),
    ("Review_Pending", "Review Pending"),
    ("Review_Approved", "Review Approved"),
    ("Review_Rejected", "Review Rejected"),
    ("Review_RequiresChanges", "Review RequiresChanges"),
]

ROLE_CHOICES = [
    ("Doctor", "Doctor"),
    ("LabTechnician", "LabTechnician"),
    ("LabAssistant", "LabAssistant"),
    ("LabManager", "LabManager"),
    ("Reviewer", "Reviewer"),
    ("Superadmin", "Superadmin"),
]


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="CenterPolicy",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("center_ref", models.CharField(max_length=64, unique=True)),
                ("review_required", models.BooleanField(default=False)),
            ],
            options={
                "verbose_name_plural": "center policies",
            },
        ),
        migrations.CreateModel(
            name="TestRequest",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("patient_ref", models.CharField(db_index=True, max_length=64)),
                ("doctor_ref", models.CharField(db_index=True, max_length=64)),
                ("center_ref", models.CharField(db_index=True, max_length=64)),
                ("test_type", models.CharField(max_length=255)),
                ("test_description", models.TextField(blank=True)),
                ("urgency", models.CharField(choices=[("Normal", "Normal"), ("Urgent", "Urgent"), ("Emergency", "Emergency")], default="Normal", max_length=16)),
                ("notes", models.TextField(blank=True)),
                ("status", models.CharField(choices=STATUS_CHOICES, db_index=True, default="Pending", editable=False, max_length=32)),
                ("version", models.PositiveIntegerField(default=0, editable=False)),
                ("review_required", models.BooleanField(default=False, editable=False)),
                ("lab_staff_ref", models.CharField(blank=True, max_length=64)),
                ("lab_staff_name", models.CharField(blank=True, max_length=255)),
                ("assigned_at", models.DateTimeField(blank=True, null=True)),
                ("collector_ref", models.CharField(blank=True, max_length=64)),
                ("collector_name", models.CharField(blank=True, max_length=255)),
                ("collection_scheduled_at", models.DateTimeField(blank=True, null=True)),
                ("collection_actual_at", models.DateTimeField(blank=True, null=True)),
                ("collection_status", models.CharField(blank=True, choices=[("In_Progress", "In Progress"), ("Completed", "Completed"), ("Failed", "Failed"), ("Rescheduled", "Rescheduled")], max_length=16)),
                ("collection_notes", models.TextField(blank=True)),
                ("testing_staff_ref", models.CharField(blank=True, max_length=64)),
                ("testing_started_at", models.DateTimeField(blank=True, null=True)),
                ("testing_completed_at", models.DateTimeField(blank=True, null=True)),
                ("testing_notes", models.TextField(blank=True)),
                ("test_parameters", models.JSONField(blank=True, default=list)),
                ("test_results", models.TextField(blank=True)),
                ("conclusion", models.TextField(blank=True)),
                ("recommendations", models.TextField(blank=True)),
                ("report_file_handle", models.CharField(blank=True, max_length=255)),
                ("report_generated_at", models.DateTimeField(blank=True, null=True)),
                ("report_sent_at", models.DateTimeField(blank=True, null=True)),
                ("report_notes", models.TextField(blank=True)),
                ("report_send_method", models.CharField(blank=True, choices=[("system", "system"), ("email", "email"), ("both", "both")], max_length=8)),
                ("report_sent_to", models.CharField(blank=True, max_length=255)),
                ("reviewer_ref", models.CharField(blank=True, max_length=64)),
                ("review_status", models.CharField(blank=True, choices=[("Pending", "Pending"), ("Approved", "Approved"), ("Rejected", "Rejected"), ("RequiresChanges", "RequiresChanges")], max_length=16)),
                ("review_notes", models.TextField(blank=True)),
                ("reviewed_at", models.DateTimeField(blank=True, null=True)),
            ],
            options={
                "ordering": ["-created_at", "-id"],
                "indexes": [models.Index(fields=["center_ref", "status"], name="test_request_center_status_idx")],
            },
        ),
        migrations.CreateModel(
            name="UserRole",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("center_ref", models.CharField(blank=True, max_length=64)),
                ("role", models.CharField(choices=ROLE_CHOICES, max_length=32)),
                ("user", models.ForeignKey(on_delete=django.db.models.deletion.CASCADE, related_name="test_request_roles", to=settings.AUTH_USER_MODEL)),
            ],
            options={
                "unique_together": {("user", "center_ref")},
            },
        ),
        migrations.CreateModel(
            name="TimelineEntry",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("sequence", models.PositiveIntegerField()),
                ("from_state", models.CharField(blank=True, max_length=32)),
                ("to_state", models.CharField(max_length=32)),
                ("event", models.CharField(max_length=32)),
                ("actor_id", models.CharField(max_length=64)),
                ("actor_role", models.CharField(max_length=32)),
                ("note", models.TextField(blank=True)),
                ("timestamp", models.DateTimeField()),
                ("test_request", models.ForeignKey(on_delete=django.db.models.deletion.PROTECT, related_name="timeline", to="test_requests.testrequest")),
            ],
            options={
                "verbose_name_plural": "timeline entries",
                "ordering": ["sequence"],
                "constraints": [models.UniqueConstraint(fields=("test_request", "sequence"), name="timeline_entry_unique_sequence")],
            },
        ),
    ]
