from django.core.management.base import BaseCommand, CommandError

from assignments.catalog import AssignmentNotFound
from grades.services import grade_batch, grade_student
from students.models import Student


class Command(BaseCommand):
    help = "Grade one student, or every active student, for a week/session."

    def add_arguments(self, parser):
        parser.add_argument("--week", type=int, required=True)
        parser.add_argument("--session", type=int, required=True)
        parser.add_argument("--student", help="GitHub username; omit to grade every active student.")

    def handle(self, *args, **options):
        week, session = options["week"], options["session"]
        try:
            if options["student"]:
                student = Student.objects.filter(github_username=options["student"]).first()
                if student is None:
                    raise CommandError(f"Student '{options['student']}' not found")
                outcome = grade_student(student, week, session)
                line = f"{student.github_username}: {outcome.status} {outcome.score}/{outcome.max_score}"
                if outcome.error_message:
                    line += f" ({outcome.error_message})"
                self.stdout.write(line)
                return

            report = grade_batch(week, session)
        except AssignmentNotFound as e:
            raise CommandError(str(e))

        for row in report.results:
            self.stdout.write(f"{row['githubUsername']}: {row['status']} {row['score']}/{row['maxScore']}")
        s = report.summary
        self.stdout.write(self.style.SUCCESS(
            f"total={s['total']} passed={s['passed']} failed={s['failed']} "
            f"not_submitted={s['not_submitted']} errors={s['errors']}"
        ))
