from django.conf import settings
from django.db import migrations, models
import django.db.models.deletion


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="ThreadNode",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("author_name", models.CharField(blank=True, max_length=255)),
                ("title", models.CharField(blank=True, max_length=500)),
                ("tags", models.TextField(blank=True)),
                ("resource_links", models.TextField(blank=True)),
                (
                    "visibility",
                    models.CharField(
                        choices=[("public", "Public"), ("private", "Private")],
                        default="public",
                        max_length=10,
                    ),
                ),
                ("body", models.TextField()),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                ("deleted", models.BooleanField(default=False)),
                ("deleted_at", models.DateTimeField(blank=True, null=True)),
                (
                    "author",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="thread_nodes",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "parent",
                    models.ForeignKey(
                        blank=True,
                        help_text="Enclosing node; empty for a top-level discussion",
                        null=True,
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="replies",
                        to="discussions.threadnode",
                    ),
                ),
                (
                    "root",
                    models.ForeignKey(
                        blank=True,
                        help_text="Top-level discussion this reply belongs to; empty on roots",
                        null=True,
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="thread_nodes",
                        to="discussions.threadnode",
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at", "-id"],
            },
        ),
        migrations.CreateModel(
            name="NodeLike",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("liked", models.BooleanField(default=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "node",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="like_records",
                        to="discussions.threadnode",
                    ),
                ),
                (
                    "user",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="node_likes",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
        ),
        migrations.AddIndex(
            model_name="threadnode",
            index=models.Index(fields=["root", "deleted"], name="thread_root_deleted_idx"),
        ),
        migrations.AddIndex(
            model_name="threadnode",
            index=models.Index(fields=["parent", "deleted"], name="thread_parent_deleted_idx"),
        ),
        migrations.AddIndex(
            model_name="threadnode",
            index=models.Index(fields=["author", "-created_at"], name="thread_author_created_idx"),
        ),
        migrations.AddIndex(
            model_name="nodelike",
            index=models.Index(fields=["node", "liked"], name="nodelike_node_liked_idx"),
        ),
        migrations.AddConstraint(
            model_name="nodelike",
            constraint=models.UniqueConstraint(fields=("node", "user"), name="discussions_nodelike_one_per_user"),
        ),
    ]
