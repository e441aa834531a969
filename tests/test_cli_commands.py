"""
Test suite for Flask CLI commands
"""

import fee_reminder_scheduler


class TestSchoolCommands:
    """Test school management commands"""

    def test_add_and_list_schools(self, runner):
        result = runner.invoke(args=['add-school', '--slug', 'riverside', '--name', 'Riverside Academy'])
        assert "School 'Riverside Academy' created successfully" in result.output

        result = runner.invoke(args=['list-schools'])
        assert 'Riverside Academy' in result.output
        assert 'Slug: riverside' in result.output

    def test_duplicate_school(self, runner, school):
        result = runner.invoke(args=['add-school', '--slug', 'greenfield', '--name', 'Again'])
        assert "already exists" in result.output

    def test_create_school_admin(self, runner, school):
        args = ['create-school-admin', '--slug', 'greenfield', '--username', 'bursar', '--email', 'b@example.com',
                '--password', 'pw', '--first-name', 'Ravi', '--last-name', 'Rao']
        assert 'School admin created' in runner.invoke(args=args).output
        assert "Username 'bursar' already exists" in runner.invoke(args=args).output

    def test_setup_db(self, runner):
        assert 'Database setup completed successfully' in runner.invoke(args=['setup-db']).output


class TestFeeCommands:
    """Test fee reporting commands"""

    def test_fee_summary(self, runner, school):
        result = runner.invoke(args=[
            'fee-summary', '--slug', 'greenfield', '--student-id', str(school.student_id), '--as-of', '2024-04-20'
        ])
        assert result.exit_code == 0
        assert 'Asha Verma (GF001)' in result.output
        assert 'Tuition / Term 1  due 2024-04-10' in result.output
        assert '₹8,000.00' in result.output

    def test_fee_summary_unknown_student(self, runner, school):
        result = runner.invoke(args=['fee-summary', '--slug', 'greenfield', '--student-id', '9999'])
        assert 'Student not found' in result.output

    def test_collection_targets(self, runner, school):
        result = runner.invoke(args=['collection-targets', '--slug', 'greenfield', '--as-of', '2024-04-20'])
        assert 'Collection targets for Greenfield Public School (2024-04)' in result.output
        assert 'Day 20 of 30' in result.output
        assert 'Behind target' in result.output

    def test_unknown_school(self, runner):
        result = runner.invoke(args=['collection-targets', '--slug', 'nowhere'])
        assert "School with slug 'nowhere' not found" in result.output

    def test_send_fee_reminders(self, runner, school, monkeypatch):
        sent_to = []

        def fake_send(to_phone, message, settings=None):
            sent_to.append(to_phone)
            return {'success': True, 'message_id': 'm1', 'error': None}

        monkeypatch.setattr(fee_reminder_scheduler, 'is_whatsapp_configured', lambda settings=None: True)
        monkeypatch.setattr(fee_reminder_scheduler, 'send_whatsapp_message', fake_send)

        result = runner.invoke(args=['send-fee-reminders', '--slug', 'greenfield'])
        assert 'Sent 2 fee reminder(s)' in result.output
        assert len(sent_to) == 2

        result = runner.invoke(args=['send-fee-reminders'])
        assert 'No fee reminders sent' in result.output
