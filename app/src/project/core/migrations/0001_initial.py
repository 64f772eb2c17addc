from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Block",
            fields=[
                ("block_num", models.PositiveBigIntegerField(primary_key=True, serialize=False)),
                ("block_hash", models.CharField(db_index=True, max_length=66)),
                ("block_parent_hash", models.CharField(blank=True, max_length=66)),
                ("extrinsics", models.JSONField(default=list)),
            ],
            options={
                "db_table": "blocks",
                "ordering": ["-block_num"],
            },
        ),
        migrations.CreateModel(
            name="Event",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("block", models.PositiveBigIntegerField(db_index=True)),
                ("extrinsic_index", models.PositiveIntegerField(blank=True, null=True)),
                ("section", models.CharField(max_length=64)),
                ("method", models.CharField(max_length=64)),
                ("data_hash", models.PositiveBigIntegerField(help_text="CRC32 of the canonical JSON payload")),
                ("data", models.JSONField(default=list)),
            ],
            options={
                "db_table": "events",
                "ordering": ["-block", "extrinsic_index"],
                "indexes": [models.Index(fields=["section", "method"], name="events_section_method_idx")],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("block", "extrinsic_index", "section", "method", "data_hash"),
                        name="unique_event_occurrence",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="Transfer",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("signer", models.CharField(blank=True, max_length=64, null=True)),
                ("nonce", models.PositiveBigIntegerField(blank=True, null=True)),
                ("src", models.CharField(blank=True, db_index=True, max_length=64)),
                ("dst", models.CharField(blank=True, db_index=True, max_length=64, null=True)),
                ("amount", models.CharField(max_length=48)),
                ("block", models.PositiveBigIntegerField(db_index=True)),
                ("extrinsic_index", models.PositiveIntegerField()),
                (
                    "ts",
                    models.PositiveBigIntegerField(blank=True, help_text="Block timestamp in milliseconds", null=True),
                ),
            ],
            options={
                "db_table": "transfers",
                "ordering": ["-block", "-extrinsic_index"],
                "constraints": [
                    models.UniqueConstraint(fields=("signer", "nonce"), name="unique_transfer_signer_nonce"),
                ],
            },
        ),
        migrations.CreateModel(
            name="Account",
            fields=[
                ("address", models.CharField(max_length=64, primary_key=True, serialize=False)),
                ("balance", models.JSONField(default=dict)),
                ("created_at_block", models.PositiveBigIntegerField(blank=True, null=True)),
                ("created_ts", models.PositiveBigIntegerField(blank=True, null=True)),
                ("identity", models.JSONField(blank=True, null=True)),
            ],
            options={
                "db_table": "accounts",
                "ordering": ["address"],
            },
        ),
        migrations.CreateModel(
            name="StakingTx",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("stash", models.CharField(db_index=True, max_length=64)),
                ("block", models.PositiveBigIntegerField()),
                ("extrinsic_index", models.PositiveIntegerField(blank=True, null=True)),
                ("event_index", models.PositiveIntegerField()),
                ("kind", models.CharField(max_length=32)),
                ("amount", models.CharField(max_length=48)),
                ("ts", models.PositiveBigIntegerField(blank=True, null=True)),
            ],
            options={
                "db_table": "staking_txs",
                "ordering": ["-block", "event_index"],
                "constraints": [
                    models.UniqueConstraint(
                        fields=("stash", "block", "extrinsic_index", "event_index"),
                        name="unique_staking_tx",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="ChainStats",
            fields=[
                ("key", models.CharField(max_length=32, primary_key=True, serialize=False)),
                ("era", models.PositiveBigIntegerField(blank=True, null=True)),
                ("session", models.PositiveBigIntegerField(default=0)),
                ("validators", models.JSONField(default=list)),
                ("finalized_block_count", models.PositiveBigIntegerField(default=0)),
            ],
            options={
                "db_table": "metadata",
                "verbose_name_plural": "chain stats",
            },
        ),
        migrations.CreateModel(
            name="ProcessedMarker",
            fields=[
                ("key", models.CharField(max_length=32, primary_key=True, serialize=False)),
                ("value", models.JSONField(null=True)),
            ],
            options={
                "db_table": "processed",
            },
        ),
    ]
